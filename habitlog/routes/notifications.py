from __future__ import annotations

from fastapi import APIRouter, Depends

from habitlog.schemas import DeviceTokenPayload
from habitlog.services.notifications import NotificationRegistrar
from habitlog.session import get_registrar

router = APIRouter()


@router.get("/v1/notifications/device")
async def device_status(registrar: NotificationRegistrar = Depends(get_registrar)):
    return {"enabled": await registrar.is_enabled()}


@router.put("/v1/notifications/device")
async def register_device(payload: DeviceTokenPayload, registrar: NotificationRegistrar = Depends(get_registrar)):
    await registrar.register_device(payload.token)
    return {"enabled": True}


@router.delete("/v1/notifications/device")
async def unregister_devices(registrar: NotificationRegistrar = Depends(get_registrar)):
    await registrar.unregister_devices()
    return {"enabled": False}
