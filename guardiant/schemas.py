from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ---------------- ACCOUNT ----------------

class RegisterData(CamelModel):
    email: EmailStr
    password: str
    display_name: Optional[str] = Field(None, alias="displayName")


class ProfileUpdate(CamelModel):
    display_name: Optional[str] = Field(None, alias="displayName")
    phone_number: Optional[str] = Field(None, alias="phoneNumber")
    emergency_contacts: Optional[list] = Field(None, alias="emergencyContacts")


# ---------------- PINS ----------------

class PinsData(CamelModel):
    normal_pin: Optional[str] = Field(None, alias="normalPin")
    security_pin: Optional[str] = Field(None, alias="securityPin")


class PinChange(CamelModel):
    current_pin: Optional[str] = Field(None, alias="currentPin")
    new_normal_pin: Optional[str] = Field(None, alias="newNormalPin")
    new_security_pin: Optional[str] = Field(None, alias="newSecurityPin")


class PinCheck(CamelModel):
    pin: Optional[str] = None


# ---------------- SETUP ----------------

class AppEntry(CamelModel):
    package_name: str = Field(alias="packageName")
    app_name: str = Field(alias="appName")
    icon: Optional[str] = None


class AppsData(CamelModel):
    apps: List[AppEntry] = []


class ProtectionData(CamelModel):
    level: str = "extreme"


# ---------------- TRIGGERS ----------------

class TriggerDetails(CamelModel):
    """
    Trigger payload. Subclasses type the keys each trigger is known to
    send; any extra metadata is kept as-is.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    latitude: Optional[float] = None
    longitude: Optional[float] = None

    def to_details(self):
        return self.model_dump(by_alias=True)


class AbruptMovementReport(TriggerDetails):
    acceleration_value: float = Field(alias="accelerationValue")


class SuspiciousSpeedReport(TriggerDetails):
    calculated_speed: float = Field(alias="calculatedSpeed")
    distance: Optional[float] = None
    time_diff: Optional[float] = Field(None, alias="timeDiff")


class PanicButtonReport(TriggerDetails):
    reason: str = "User pressed the panic button"
    priority: str = "CRITICAL"


class ActivationRequest(CamelModel):
    alert_type: Optional[str] = Field(None, alias="alertType")
    details: dict = {}


class AlertRef(CamelModel):
    alert_id: Optional[str] = Field(None, alias="alertId")


# ---------------- DEVICE / PHONE ----------------

class PushTokenData(CamelModel):
    token: Optional[str] = None


class PhoneData(CamelModel):
    phone_number: Optional[str] = Field(None, alias="phoneNumber")


class CodeData(CamelModel):
    code: Optional[str] = None
