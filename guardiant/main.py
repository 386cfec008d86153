import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from functools import lru_cache

from fastapi import FastAPI, Depends, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from guardiant.accounts import AccountService
from guardiant.auth import create_access_token, decode_access_token
from guardiant.clock import utcnow
from guardiant.config import LOG_LEVEL
from guardiant.database import Base, engine, get_db
from guardiant.errors import (
    ServiceError,
    UNAUTHENTICATED,
    INVALID_ARGUMENT,
    NOT_FOUND,
    UNAVAILABLE,
    INTERNAL,
)
from guardiant.push import build_push_gateway
from guardiant.sms import build_sms_gateway, SmsDeliveryError
from guardiant.schemas import (
    RegisterData,
    ProfileUpdate,
    PinsData,
    PinChange,
    PinCheck,
    AppsData,
    ProtectionData,
    AbruptMovementReport,
    SuspiciousSpeedReport,
    PanicButtonReport,
    ActivationRequest,
    AlertRef,
    PushTokenData,
    PhoneData,
    CodeData,
)
from guardiant.security.alert_store import AlertStore
from guardiant.security.command_dispatcher import (
    CommandDispatcher,
    Command,
    DEVICE_UNREGISTERED,
)
from guardiant.security.credential_verifier import CredentialVerifier
from guardiant.security.mode_machine import (
    ModeStateMachine,
    AlertType,
    ResolutionType,
)
from guardiant.security.otp_verifier import OTPVerifier
from guardiant.security.transaction import TransactionManager
from guardiant.security.user_store import UserStore


logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger(__name__)


# ---------------- APP ----------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Creating database tables...")
    Base.metadata.create_all(bind=engine)
    yield


app = FastAPI(
    title="Guardiant API",
    description="Security mode, alerts and remote device commands",
    version="1.0.0",
    lifespan=lifespan,
)


# ---------------- ERRORS ----------------

@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.info("Validation error on %s: %s", request.url.path, exc.errors())
    err = ServiceError(INVALID_ARGUMENT, "Invalid request body")
    return JSONResponse(status_code=err.status_code, content=err.to_dict())


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    # Full detail stays in the server log
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    err = ServiceError(INTERNAL, "Internal error")
    return JSONResponse(status_code=err.status_code, content=err.to_dict())


# ---------------- GATEWAYS ----------------

@lru_cache
def get_push_gateway():
    return build_push_gateway()


@lru_cache
def get_sms_gateway():
    return build_sms_gateway()


def get_clock():
    return utcnow


# ---------------- SERVICES ----------------

@dataclass
class Services:
    accounts: AccountService
    credentials: CredentialVerifier
    modes: ModeStateMachine
    dispatcher: CommandDispatcher
    otp: OTPVerifier


def get_services(
    db: Session = Depends(get_db),
    push=Depends(get_push_gateway),
    clock=Depends(get_clock),
) -> Services:

    users = UserStore(db)
    alerts = AlertStore(db)

    dispatcher = CommandDispatcher(users, alerts, push, clock=clock)
    modes = ModeStateMachine(
        users,
        alerts,
        TransactionManager(db),
        dispatcher=dispatcher,
        clock=clock,
    )

    return Services(
        accounts=AccountService(db, users, alerts, clock=clock),
        credentials=CredentialVerifier(db, users, modes, clock=clock),
        modes=modes,
        dispatcher=dispatcher,
        otp=OTPVerifier(db, users, clock=clock),
    )


# ---------------- AUTH ----------------

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="login", auto_error=False)


def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> str:

    if not token:
        raise ServiceError(UNAUTHENTICATED, "Not authenticated")

    user_id = decode_access_token(token)

    if not UserStore(db).get(user_id):
        raise ServiceError(UNAUTHENTICATED, "User not found")

    return user_id


# ---------------- HOME ----------------

@app.get("/")
def home():
    return {
        "status": "ok",
        "service": "guardiant-backend",
        "timestamp": utcnow().isoformat(),
    }


# ---------------- ACCOUNT ----------------

@app.post("/register")
def register(data: RegisterData, services: Services = Depends(get_services)):

    user_id = services.accounts.register(data.email, data.password, data.display_name)

    return {"success": True, "userId": user_id}


@app.post("/login")
def login(
    form: OAuth2PasswordRequestForm = Depends(),
    services: Services = Depends(get_services),
):

    user = services.accounts.authenticate(form.username, form.password)

    token = create_access_token(data={"sub": user.id})

    return {"access_token": token, "token_type": "bearer"}


@app.delete("/account")
def delete_account(
    user: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):

    services.accounts.delete(user)

    return {"success": True}


@app.patch("/profile")
def update_profile(
    data: ProfileUpdate,
    user: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):

    profile = services.accounts.update_profile(
        user,
        display_name=data.display_name,
        phone_number=data.phone_number,
        emergency_contacts=data.emergency_contacts,
    )

    return {"success": True, "data": profile}


# ---------------- PINS ----------------

@app.post("/pins")
def save_pins(
    data: PinsData,
    user: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):

    services.credentials.save_pins(user, data.normal_pin, data.security_pin)

    return {"success": True, "message": "PINs saved"}


@app.post("/pins/verify")
def verify_pin(
    data: PinCheck,
    user: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):

    result = services.credentials.verify(user, data.pin)

    response = {"success": result.success, "mode": result.mode}

    if result.alert_id:
        response["alertId"] = result.alert_id

    return response


@app.post("/pins/change")
def change_pins(
    data: PinChange,
    user: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):

    services.credentials.change_pins(
        user,
        data.current_pin,
        data.new_normal_pin,
        data.new_security_pin,
    )

    return {"success": True, "message": "PINs changed"}


# ---------------- SETUP ----------------

@app.post("/apps")
def save_protected_apps(
    data: AppsData,
    user: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):

    count = services.accounts.save_protected_apps(user, data.apps)

    return {"success": True, "count": count}


@app.post("/protection")
def set_protection_level(
    data: ProtectionData,
    user: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):

    features = services.accounts.set_protection_level(user, data.level)

    return {"success": True, "level": data.level, "features": features}


@app.get("/setup")
def get_setup_status(
    user: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return {"success": True, "data": services.accounts.get_setup_status(user)}


@app.get("/config")
def get_user_config(
    user: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):

    config = services.accounts.get_user_config(user)

    if config is None:
        raise ServiceError(NOT_FOUND, "Configuration not found", "config-not-found")

    return {"success": True, "data": config}


# ---------------- SECURITY MODE ----------------

@app.post("/security/activate")
def activate_security_mode(
    data: ActivationRequest,
    user: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):

    if not data.alert_type:
        raise ServiceError(INVALID_ARGUMENT, "alertType is required")

    alert_id = services.modes.activate(user, data.alert_type, data.details)

    return {"success": True, "alertId": alert_id}


@app.post("/security/movement")
def report_abnormal_movement(
    report: AbruptMovementReport,
    user: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):

    logger.warning(
        "Abnormal movement reported by %s: %s m/s2",
        user,
        report.acceleration_value,
    )

    alert_id = services.modes.activate(
        user,
        AlertType.ABRUPT_MOVEMENT,
        report.to_details(),
    )

    return {"success": True, "alertId": alert_id}


@app.post("/security/speed")
def report_suspicious_speed(
    report: SuspiciousSpeedReport,
    user: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):

    logger.warning(
        "Suspicious speed reported by %s: %s m/s",
        user,
        report.calculated_speed,
    )

    alert_id = services.modes.activate(
        user,
        AlertType.SUSPICIOUS_SPEED,
        report.to_details(),
    )

    return {"success": True, "alertId": alert_id}


@app.post("/security/panic")
def trigger_panic_button(
    report: PanicButtonReport,
    user: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):

    logger.warning("PANIC BUTTON pressed by %s: %s", user, report.reason)

    alert_id = services.modes.activate(
        user,
        AlertType.PANIC_BUTTON,
        report.to_details(),
    )

    return {"success": True, "alertId": alert_id}


@app.post("/security/deactivate")
def deactivate_security_mode(
    data: AlertRef,
    user: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):

    result = services.modes.deactivate(user, data.alert_id, ResolutionType.FALSE_ALARM)

    return {
        "success": True,
        "alertId": result.alert_id,
        "resolutionType": result.resolution_type,
        "alreadyResolved": result.already_resolved,
    }


@app.post("/security/resolve-on-unlock")
def deactivate_alert_on_unlock(
    data: AlertRef,
    user: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):

    result = services.modes.deactivate(
        user,
        data.alert_id,
        ResolutionType.UNLOCKED_SUCCESSFULLY,
    )

    return {
        "success": True,
        "alertId": result.alert_id,
        "resolutionType": result.resolution_type,
        "alreadyResolved": result.already_resolved,
    }


# ---------------- REMOTE COMMANDS ----------------

def _dispatch_critical(services, user, command, alert_id):

    if not alert_id:
        raise ServiceError(INVALID_ARGUMENT, "alertId is required", "alertId-required")

    result = services.dispatcher.send_command(user, command, {"alertId": alert_id})

    if result.success:
        return {"success": True, "message": result.message}

    if result.reason == DEVICE_UNREGISTERED:
        raise ServiceError(NOT_FOUND, "No device registered", DEVICE_UNREGISTERED)

    # Caller must know the command may not reach the device
    raise ServiceError(UNAVAILABLE, result.message, result.reason)


@app.post("/security/lock")
def lock_device(
    data: AlertRef,
    user: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return _dispatch_critical(services, user, Command.LOCK_DEVICE, data.alert_id)


@app.post("/security/wipe")
def wipe_data(
    data: AlertRef,
    user: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return _dispatch_critical(services, user, Command.WIPE_DATA, data.alert_id)


@app.post("/push-token")
def update_push_token(
    data: PushTokenData,
    user: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):

    services.accounts.update_push_token(user, data.token)

    return {"success": True, "message": "Push token updated"}


# ---------------- PHONE VERIFICATION ----------------

@app.post("/phone/send-code")
def send_verification_code(
    data: PhoneData,
    user: str = Depends(get_current_user),
    services: Services = Depends(get_services),
    sms=Depends(get_sms_gateway),
):

    if not data.phone_number:
        raise ServiceError(INVALID_ARGUMENT, "phoneNumber is required")

    code = services.otp.issue(user, data.phone_number)

    try:
        sms.send(data.phone_number, f"Your Guardiant verification code is: {code}")
    except SmsDeliveryError:
        raise ServiceError(UNAVAILABLE, "Could not send the verification code")

    return {"success": True, "message": "Code sent"}


@app.post("/phone/verify")
def verify_code(
    data: CodeData,
    user: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):

    if not data.code:
        raise ServiceError(INVALID_ARGUMENT, "code is required")

    services.otp.verify(user, data.code)

    return {"success": True, "message": "Phone verified"}


# ---------------- READS ----------------

@app.get("/alerts")
def get_security_alerts(
    user: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return {"success": True, "alerts": services.accounts.get_security_alerts(user)}


@app.get("/activity")
def get_activity_feed(
    user: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return {"success": True, "data": services.accounts.get_activity_feed(user)}
