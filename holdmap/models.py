# holdmap/models.py
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ==========================
# PRIMITIVE ENUMS
# ==========================

class _WireEnum(str, Enum):
    """
    Enum whose wire form is "<Prefix>.<Name>" as sent by the mobile client.
    Bare names are accepted too.
    """

    @classmethod
    def parse(cls, raw: Optional[str]) -> Optional["_WireEnum"]:
        if raw is None:
            return None
        name = str(raw).rsplit(".", 1)[-1]
        for member in cls:
            if member.value == name:
                return member
        return None


class PrimitiveKind(_WireEnum):
    START_HOLD = "StartHold"
    START_HOLD_HAND = "StartHold_Hand"
    START_HOLD_FOOT = "StartHold_Foot"
    START_HOLD_RIGHT_HAND = "StartHold_RightHand"
    START_HOLD_LEFT_HAND = "StartHold_LeftHand"
    GOAL_HOLD = "GoalHold"
    BOTE = "Bote"
    KANTE = "Kante"
    PLAIN_HOLD = "PlainHold"


class SizeClass(_WireEnum):
    XS = "XS"
    S = "S"
    M = "M"
    L = "L"
    XL = "XL"


class Placement(_WireEnum):
    CENTER = "Center"
    RIGHT = "Right"
    BOTTOM = "Bottom"
    LEFT = "Left"
    TOP = "Top"


# ==========================
# RECORDS
# ==========================

class TrimSpec(BaseModel):
    """Fractions of each displayed edge to discard, each in [0, 1)."""

    left: float = Field(default=0.0, ge=0.0, lt=1.0)
    right: float = Field(default=0.0, ge=0.0, lt=1.0)
    top: float = Field(default=0.0, ge=0.0, lt=1.0)
    bottom: float = Field(default=0.0, ge=0.0, lt=1.0)


class _TrimmedRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")

    trimLeft: float = Field(default=0.0, ge=0.0, lt=1.0)
    trimRight: float = Field(default=0.0, ge=0.0, lt=1.0)
    trimTop: float = Field(default=0.0, ge=0.0, lt=1.0)
    trimBottom: float = Field(default=0.0, ge=0.0, lt=1.0)

    @property
    def trim(self) -> TrimSpec:
        return TrimSpec(
            left=self.trimLeft,
            right=self.trimRight,
            top=self.trimTop,
            bottom=self.trimBottom,
        )


class BasePictureRecord(_TrimmedRecord):
    originalPath: str = ""
    rotation: int = 0
    picturePath: str = ""
    pictureURL: str = ""
    thumbnailURL: str = ""


class ProblemRecord(_TrimmedRecord):
    basePicturePath: str = ""
    imageRequired: bool = False
    completedImageURL: str = ""
    completedImageThumbURL: str = ""


class PrimitiveRecord(BaseModel):
    """One annotation as stored under problems/<id>/primitives."""

    model_config = ConfigDict(extra="ignore")

    type: str = ""
    sizeType: str = ""
    subItemPosition: str = "PrimitiveSubItemPosition.Center"
    positionX: float = 0.0
    positionY: float = 0.0
    color: Tuple[int, int, int] = (255, 0, 0)

    @field_validator("color", mode="before")
    @classmethod
    def _split_color(cls, value: Any) -> Any:
        # The client stores colours as "r,g,b"
        if isinstance(value, str):
            return tuple(int(part.strip()) for part in value.split(","))
        return value


# ==========================
# EVENTS AND JOBS
# ==========================

class RecordEvent(BaseModel):
    """A write on a record: before/after snapshots, either may be absent."""

    before: Optional[Dict[str, Any]] = None
    after: Optional[Dict[str, Any]] = None

    @property
    def kind(self) -> str:
        if self.after is not None:
            return "create" if self.before is None else "update"
        return "delete"


class JobStatus(BaseModel):
    id: str
    status: str


class JobResult(BaseModel):
    id: str
    status: str
    pipeline: str
    message: str
