"""
Standard variable table

Fixed mapping from a small integer slot to the canonical name under which
monitored values are persisted.
"""

from dataclasses import dataclass

from opcua_bridge.opcua.exceptions import InvalidSlotError


@dataclass(frozen=True)
class StandardVariable:
    """
    One entry of the standard variable table

    Attributes:
        slot: Table index
        name: Canonical variable name used as the persistence key
    """

    slot: int
    name: str

    def to_dict(self) -> dict:
        return {"id": self.slot, "name": self.name}


STANDARD_VARIABLES: tuple[StandardVariable, ...] = (
    StandardVariable(0, "temp1"),
    StandardVariable(1, "temp2"),
    StandardVariable(2, "flow1"),
    StandardVariable(3, "flow2"),
)


def get_standard_variable(slot: int) -> StandardVariable:
    """
    Look up a standard variable by slot

    Raises:
        InvalidSlotError: If slot is not an integer index into the table
    """
    if isinstance(slot, bool) or not isinstance(slot, int):
        raise InvalidSlotError(f"Slot must be an integer, got {slot!r}", context={"slot": slot})
    if not 0 <= slot < len(STANDARD_VARIABLES):
        raise InvalidSlotError(
            f"Slot {slot} is outside the standard variable table (0-{len(STANDARD_VARIABLES) - 1})",
            context={"slot": slot},
        )
    return STANDARD_VARIABLES[slot]


def parse_slot(raw: str | int | None) -> int | None:
    """Convert router input ("0", 0, "", None) into an optional slot"""
    if raw is None:
        return None
    if isinstance(raw, str):
        raw = raw.strip()
        if raw == "":
            return None
        if not raw.lstrip("-").isdigit():
            raise InvalidSlotError(f"Slot must be an integer, got {raw!r}", context={"slot": raw})
        raw = int(raw)
    return get_standard_variable(raw).slot


def standard_variables_payload() -> list[dict]:
    """Table rendered the way API consumers receive it"""
    return [variable.to_dict() for variable in STANDARD_VARIABLES]
