from enum import Enum


class RoleEnum(str, Enum):
    STUDENT = "student"
    ADMIN = "admin"

class TestTypeEnum(str, Enum):
    FREE = "free"
    PAID = "paid"

class QuestionTypeEnum(str, Enum):
    SINGLE = "single"
    MULTIPLE = "multiple"
    NUMERICAL = "numerical"

class AttemptStatusEnum(str, Enum):
    IN_PROGRESS = "in-progress"
    SUBMITTED = "submitted"
    AUTO_SUBMITTED = "auto-submitted"
    EXPIRED = "expired"

TERMINAL_ATTEMPT_STATUSES = (
    AttemptStatusEnum.SUBMITTED,
    AttemptStatusEnum.AUTO_SUBMITTED,
    AttemptStatusEnum.EXPIRED,
)

# Statuses that take part in rank/percentile and peer statistics
RANKED_ATTEMPT_STATUSES = (
    AttemptStatusEnum.SUBMITTED,
    AttemptStatusEnum.AUTO_SUBMITTED,
)

class ViolationTypeEnum(str, Enum):
    TAB_SWITCH = "tab-switch"
    WINDOW_BLUR = "window-blur"
    COPY_PASTE = "copy-paste"
    RIGHT_CLICK = "right-click"
    DEVELOPER_TOOLS = "developer-tools"
    DISCONNECT = "disconnect"

VIOLATION_MESSAGES = {
    ViolationTypeEnum.TAB_SWITCH: "Warning: Switching tabs during exam is not allowed.",
    ViolationTypeEnum.WINDOW_BLUR: "Warning: Please keep the exam window in focus.",
    ViolationTypeEnum.COPY_PASTE: "Warning: Copy-paste operations are not allowed.",
    ViolationTypeEnum.RIGHT_CLICK: "Warning: Right-click is disabled during exam.",
    ViolationTypeEnum.DEVELOPER_TOOLS: "Warning: Developer tools are not allowed during exam.",
    ViolationTypeEnum.DISCONNECT: "Warning: Connection lost during exam.",
}
DEFAULT_VIOLATION_MESSAGE = "Warning: Suspicious activity detected."

FORCED_SUBMIT_NOTE = "Auto-submitted due to multiple violations"

class PaymentStatusEnum(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"

class EnrollmentTypeEnum(str, Enum):
    COURSE = "course"
    TEST = "test"
    RECORDING = "recording"

class EnrollmentStatusEnum(str, Enum):
    ENROLLED = "enrolled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
