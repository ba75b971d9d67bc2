"""
Pydantic schemas for the fleet API.

Field names are snake_case in Python and camelCase on the wire.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from commands.models import CommandPriority, CommandStatus, CommandType
from fleet.models import MachineType


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =======================
# COMMON
# =======================

class BaseResponse(ApiModel):
    success: bool
    message: Optional[str] = None
    timestamp: Optional[str] = None

class ErrorResponse(ApiModel):
    success: bool = False
    error: str
    details: Optional[Dict[str, Any]] = None

# =======================
# 1. HEARTBEAT
# =======================

class HeartbeatRequest(ApiModel):
    # Optional so a missing id reaches the service and maps to 400
    machine_id: Optional[str] = None
    device_data: Optional[Dict[str, Any]] = None

class HeartbeatResponse(BaseResponse):
    machine_id: str

# =======================
# 2. MONITORING
# =======================

class MonitorResponse(BaseResponse):
    total_machines: int
    offline_machines: int
    critical_offline_machines: int
    alarms_created: int
    failed_machines: int

class MachineStatus(ApiModel):
    id: str
    name: str
    status: str
    liveness: Optional[str] = None
    last_seen: Optional[int] = None
    minutes_since_last_heartbeat: Optional[int] = None
    reason: Optional[str] = None

class StatusStats(ApiModel):
    total_machines: int
    online_machines: int
    offline_machines: int
    error_machines: int

class StatusCheckResponse(BaseResponse):
    stats: StatusStats
    machines: List[MachineStatus]

# =======================
# 3. EMAIL
# =======================

class SendEmailRequest(ApiModel):
    to: List[str] = Field(min_length=1)
    subject: str = Field(min_length=1)
    html_content: str = Field(min_length=1)
    from_: Optional[str] = Field(default=None, alias="from")

class SendEmailResponse(BaseResponse):
    provider: str

class RetryDeadLettersResponse(BaseResponse):
    retried: int
    provider: str

# =======================
# 4. ALARMS
# =======================

class AlarmRecord(ApiModel):
    id: str
    machine_id: str
    type: str
    code: str
    severity: str
    status: str
    message: str
    timestamp: str
    acknowledged_by: Optional[str] = None
    acknowledged_at: Optional[str] = None
    resolved_by: Optional[str] = None
    resolved_at: Optional[str] = None
    notified: bool = False

class AlarmsResponse(BaseResponse):
    data: List[AlarmRecord]

class AlarmResponse(BaseResponse):
    data: AlarmRecord

class AlarmStatsResponse(BaseResponse):
    data: Dict[str, int]

class AlarmActionRequest(ApiModel):
    user: str = Field(default="operator", min_length=1)

class DeleteResponse(BaseResponse):
    deleted: int

# =======================
# 5. MACHINES
# =======================

class NotificationSettingsModel(ApiModel):
    email_addresses: List[str] = Field(default_factory=list)
    enable_offline_alerts: bool = True
    enable_error_alerts: bool = True
    alert_threshold_minutes: int = Field(default=5, ge=1)

class MachineCreate(ApiModel):
    name: str = Field(min_length=1)
    serial_number: str = Field(min_length=1)
    type: MachineType = MachineType.SNACK
    iot_number: Optional[str] = None
    model: Optional[str] = None
    location: Optional[str] = None
    is_test: bool = False
    notifications: NotificationSettingsModel = Field(default_factory=NotificationSettingsModel)

class MachineRecordModel(ApiModel):
    id: str
    name: str
    serial_number: str
    type: str
    iot_number: Optional[str] = None
    model: Optional[str] = None
    location: Optional[str] = None
    is_test: bool = False
    created_at: Optional[str] = None

class MachineResponse(BaseResponse):
    data: MachineRecordModel

class CleaningLogCreate(ApiModel):
    performed_by: Optional[str] = None
    notes: Optional[str] = None

class CleaningLogResponse(BaseResponse):
    id: str
    machine_id: str

# =======================
# 6. COMMANDS
# =======================

class CommandCreate(ApiModel):
    machine_id: str = Field(min_length=1)
    type: CommandType
    parameters: Dict[str, Any] = Field(default_factory=dict)
    priority: CommandPriority = CommandPriority.NORMAL
    created_by: str = "operator"
    timeout: Optional[int] = Field(default=None, ge=1)

class CommandStatusUpdate(ApiModel):
    status: CommandStatus
    response: Optional[Dict[str, Any]] = None

class CommandRecord(ApiModel):
    id: str
    machine_id: str
    type: str
    parameters: Dict[str, Any]
    priority: str
    status: str
    max_retries: int
    retry_count: int
    timeout: int
    created_by: str
    created_at: str
    updated_at: Optional[str] = None
    response: Optional[Dict[str, Any]] = None

class CommandResponse(BaseResponse):
    data: CommandRecord

class CommandSubmitResponse(BaseResponse):
    command_id: str

class SweepTimeoutsResponse(BaseResponse):
    timed_out: int
