from enum import Enum


class NodeKind(str, Enum):
    PRODUCT = "PRODUCT"
    COLOR = "COLOR"
    SIZE = "SIZE"


class ReasonCode(str, Enum):
    # manual / stocktake reasons
    ADJUSTMENT = "ADJUSTMENT"
    STOCKTAKE = "STOCKTAKE"
    DAMAGE = "DAMAGE"
    EXPIRE = "EXPIRE"
    MISPLACEMENT = "MISPLACEMENT"
    THEFT = "THEFT"
    OTHER = "OTHER"

    # operational
    SALE = "SALE"
    RETURN = "RETURN"
    RESTOCK = "RESTOCK"

    @classmethod
    def audit_codes(cls) -> tuple["ReasonCode", ...]:
        """Codes an operator can pick when correcting a physical count."""
        return (
            cls.ADJUSTMENT,
            cls.STOCKTAKE,
            cls.DAMAGE,
            cls.EXPIRE,
            cls.MISPLACEMENT,
            cls.THEFT,
            cls.OTHER,
        )
