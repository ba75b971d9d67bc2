"""
Command Dispatch - Parameter Schemas.

============================================================
PURPOSE
============================================================
One parameter model per CommandType. COMMAND_PARAMETERS is
the tag -> shape table; adding a CommandType without an
entry fails the completeness test.

Parameters arrive in camelCase from clients and are stored
in camelCase, so models accept both spellings.

============================================================
"""

from typing import Any, Dict, List, Literal, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from core.exceptions import InvalidInputError
from commands.models import CommandType


class CommandParameters(BaseModel):
    """Base for all parameter shapes."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )


# =============================================================
# ICE CREAM
# =============================================================

class IceCreamSetModeParams(CommandParameters):
    mode: Literal["auto", "preservation", "stand-by"]


class IceCreamFlavorCombinationParams(CommandParameters):
    sauce: int = Field(ge=1, le=3)
    topping: int = Field(ge=1, le=3)


class IceCreamLockSettingsParams(CommandParameters):
    cleaning_timeout_hours: Optional[int] = Field(default=None, ge=0)
    power_loss_timeout_hours: Optional[int] = Field(default=None, ge=0)


class IceCreamCheckStatusParams(CommandParameters):
    include_temperatures: bool = True
    include_tank_levels: bool = True


class IceCreamProductionStatsParams(CommandParameters):
    period: Literal["today", "week", "month"] = "today"


class IceCreamTemperatureReadingsParams(CommandParameters):
    detailed: bool = False


# =============================================================
# SNACK VENDING
# =============================================================

class VendingConfigureSlotParams(CommandParameters):
    slot: int = Field(ge=1)
    product_id: Optional[str] = None
    price: Optional[float] = Field(default=None, ge=0)
    enabled: Optional[bool] = None
    max_quantity: Optional[int] = Field(default=None, ge=0)


class VendingDispenseProductParams(CommandParameters):
    slot: int = Field(ge=1)
    quantity: int = Field(default=1, ge=1)
    test_mode: bool = True


class SlotPrice(CommandParameters):
    slot: int = Field(ge=1)
    price: float = Field(ge=0)


class VendingSetPricesParams(CommandParameters):
    price_updates: List[SlotPrice]


class VendingSlotsParams(CommandParameters):
    slots: List[int] = Field(min_length=1)


class VendingSetTemperatureParams(CommandParameters):
    temperature: float = Field(ge=4, le=25)
    zone: Optional[str] = None


class VendingPaymentModesParams(CommandParameters):
    cash: bool
    card: bool
    qr: bool
    mobile: bool


class VendingEnergyModeParams(CommandParameters):
    enabled: bool
    schedule: Optional[str] = None


# =============================================================
# COFFEE
# =============================================================

class CoffeeSetRecipeParams(CommandParameters):
    beverage: str
    strength: int = Field(ge=1, le=10)
    size: Literal["small", "medium", "large"]
    temperature: float = Field(ge=65, le=95)


class CoffeeWaterTempParams(CommandParameters):
    temperature: float = Field(ge=65, le=95)
    beverage: Optional[str] = None


class CoffeeCleaningParams(CommandParameters):
    type: Literal["rinse", "deep", "descale"]
    duration: Optional[int] = Field(default=None, ge=1)


class CoffeeStrengthParams(CommandParameters):
    beverage: str
    strength: int = Field(ge=1, le=10)


class CoffeeManageBeansParams(CommandParameters):
    action: Literal["check", "refill", "calibrate"]


# =============================================================
# PERFUME
# =============================================================

class PerfumeSprayAmountParams(CommandParameters):
    amount: float = Field(gt=0)
    scent: Optional[int] = Field(default=None, ge=1, le=5)


class PerfumeSelectScentParams(CommandParameters):
    scent_id: int = Field(ge=1, le=5)


class PerfumeLockControlParams(CommandParameters):
    action: Literal["lock", "unlock"]
    duration: Optional[int] = Field(default=None, ge=1)


class PerfumeTestDispenseParams(CommandParameters):
    scent_id: int = Field(ge=1, le=5)
    amount: float = Field(gt=0)


# =============================================================
# UNIVERSAL
# =============================================================

class RebootParams(CommandParameters):
    force: bool = False
    delay: Optional[int] = Field(default=None, ge=0)


class FirmwareUpdateParams(CommandParameters):
    version: str
    url: str
    checksum: str


class SyncTimeParams(CommandParameters):
    timestamp: str
    timezone: str


class GetStatusParams(CommandParameters):
    include_detailed: bool = False
    sections: Optional[List[str]] = None


class DisplayMessageParams(CommandParameters):
    message: str = Field(min_length=1)
    duration: Optional[int] = Field(default=None, ge=1)
    priority: Literal["low", "normal", "high"] = "normal"


class EnableMaintenanceParams(CommandParameters):
    duration: Optional[int] = Field(default=None, ge=1)
    message: Optional[str] = None


class DisableMaintenanceParams(CommandParameters):
    force: bool = False


class EmergencyStopParams(CommandParameters):
    reason: str = Field(min_length=1)


class ResetAlarmsParams(CommandParameters):
    alarm_codes: Optional[List[str]] = None


class OperationHoursParams(CommandParameters):
    start_time: str
    end_time: str
    days: List[str]


# =============================================================
# DIAGNOSTICS
# =============================================================

class SelfTestParams(CommandParameters):
    components: Optional[List[str]] = None
    generate_report: bool = True


class SensorTestParams(CommandParameters):
    sensors: Optional[List[str]] = None
    duration: Optional[int] = Field(default=None, ge=1)


class CollectLogsParams(CommandParameters):
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    log_level: Optional[str] = None


class NetworkTestParams(CommandParameters):
    endpoints: Optional[List[str]] = None
    timeout: Optional[int] = Field(default=None, ge=1)


# =============================================================
# TAG -> SHAPE
# =============================================================

COMMAND_PARAMETERS: Dict[CommandType, Type[CommandParameters]] = {
    CommandType.ICE_CREAM_SET_MODE: IceCreamSetModeParams,
    CommandType.ICE_CREAM_SET_FLAVOR_COMBINATION: IceCreamFlavorCombinationParams,
    CommandType.ICE_CREAM_SET_LOCK_SETTINGS: IceCreamLockSettingsParams,
    CommandType.ICE_CREAM_CHECK_STATUS: IceCreamCheckStatusParams,
    CommandType.ICE_CREAM_VIEW_PRODUCTION_STATS: IceCreamProductionStatsParams,
    CommandType.ICE_CREAM_GET_TEMPERATURE_READINGS: IceCreamTemperatureReadingsParams,
    CommandType.VENDING_CONFIGURE_SLOT: VendingConfigureSlotParams,
    CommandType.VENDING_DISPENSE_PRODUCT: VendingDispenseProductParams,
    CommandType.VENDING_SET_PRICES: VendingSetPricesParams,
    CommandType.VENDING_DISABLE_SLOT: VendingSlotsParams,
    CommandType.VENDING_ENABLE_SLOT: VendingSlotsParams,
    CommandType.VENDING_SET_TEMPERATURE: VendingSetTemperatureParams,
    CommandType.VENDING_SET_PAYMENT_MODES: VendingPaymentModesParams,
    CommandType.VENDING_SET_ENERGY_MODE: VendingEnergyModeParams,
    CommandType.COFFEE_SET_RECIPE: CoffeeSetRecipeParams,
    CommandType.COFFEE_SET_WATER_TEMP: CoffeeWaterTempParams,
    CommandType.COFFEE_START_CLEANING: CoffeeCleaningParams,
    CommandType.COFFEE_SET_STRENGTH: CoffeeStrengthParams,
    CommandType.COFFEE_MANAGE_BEANS: CoffeeManageBeansParams,
    CommandType.PERFUME_SET_SPRAY_AMOUNT: PerfumeSprayAmountParams,
    CommandType.PERFUME_SELECT_SCENT: PerfumeSelectScentParams,
    CommandType.PERFUME_LOCK_CONTROL: PerfumeLockControlParams,
    CommandType.PERFUME_TEST_DISPENSE: PerfumeTestDispenseParams,
    CommandType.UNIVERSAL_REBOOT: RebootParams,
    CommandType.UNIVERSAL_UPDATE_FIRMWARE: FirmwareUpdateParams,
    CommandType.UNIVERSAL_SYNC_TIME: SyncTimeParams,
    CommandType.UNIVERSAL_GET_STATUS: GetStatusParams,
    CommandType.UNIVERSAL_SET_DISPLAY_MESSAGE: DisplayMessageParams,
    CommandType.UNIVERSAL_ENABLE_MAINTENANCE_MODE: EnableMaintenanceParams,
    CommandType.UNIVERSAL_DISABLE_MAINTENANCE_MODE: DisableMaintenanceParams,
    CommandType.UNIVERSAL_EMERGENCY_STOP: EmergencyStopParams,
    CommandType.UNIVERSAL_RESET_ALARMS: ResetAlarmsParams,
    CommandType.UNIVERSAL_SET_OPERATION_HOURS: OperationHoursParams,
    CommandType.DIAGNOSTIC_RUN_SELF_TEST: SelfTestParams,
    CommandType.DIAGNOSTIC_TEST_SENSORS: SensorTestParams,
    CommandType.DIAGNOSTIC_COLLECT_LOGS: CollectLogsParams,
    CommandType.DIAGNOSTIC_NETWORK_TEST: NetworkTestParams,
}


def parse_parameters(command_type: CommandType, raw: Optional[Dict[str, Any]]) -> CommandParameters:
    """
    Validate raw parameters against the shape for command_type.

    Raises:
        InvalidInputError: Unknown type or parameters that do not fit the shape
    """
    model = COMMAND_PARAMETERS.get(command_type)
    if model is None:
        raise InvalidInputError(f"No parameter schema for {command_type}", field="type")
    try:
        return model.model_validate(raw or {})
    except ValidationError as e:
        raise InvalidInputError(
            f"Invalid parameters for {command_type.value}: {e.errors()[0].get('msg', 'invalid')}",
            field="parameters",
            context={"errors": len(e.errors())},
            cause=e,
        ) from e


def dump_parameters(params: CommandParameters) -> Dict[str, Any]:
    """Serialize to the camelCase wire/storage form."""
    return params.model_dump(by_alias=True, exclude_none=True)
