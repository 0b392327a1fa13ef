"""Shielded note value object."""

from dataclasses import dataclass, field, replace

from shieldpool.utils.field import parse_field, require_field


@dataclass(frozen=True)
class Note:
    """
    One unit of shielded value, known only to its owner until spent.

    Attributes:
        amount: Quantity in the token's base unit
        token: Field encoding of the asset identifier (e.g. a 160-bit address)
        owner_public_key: Public identifier derived from the owner secret
        salt: Single-use randomness, unique per note

    Amount and salt are private and kept out of repr() so a note can be
    logged or shown in a traceback without leaking them.
    """

    amount: int = field(repr=False)
    token: int
    owner_public_key: int
    salt: int = field(repr=False)

    def __post_init__(self):
        require_field(self.amount, "amount")
        require_field(self.token, "token")
        require_field(self.owner_public_key, "owner_public_key")
        require_field(self.salt, "salt")

    def with_salt(self, salt: int) -> "Note":
        """Copy of this note with a different salt."""
        return replace(self, salt=salt)

    @classmethod
    def from_dict(cls, data: dict) -> "Note":
        """Build a note from a plain mapping (decimal strings or ints)."""
        return cls(
            amount=parse_field(data["amount"], "amount"),
            token=parse_field(data["token"], "token"),
            owner_public_key=parse_field(data["owner_public_key"], "owner_public_key"),
            salt=parse_field(data["salt"], "salt"),
        )

    def to_dict(self) -> dict:
        """
        Serialize to a plain mapping with decimal strings.

        The result contains private material; store it only in the owner's
        wallet.
        """
        return {
            "amount": str(self.amount),
            "token": str(self.token),
            "owner_public_key": str(self.owner_public_key),
            "salt": str(self.salt),
        }
