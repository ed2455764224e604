"""FastAPI dependencies resolving the components held on ``app.state``."""

from fastapi import Request

from otp_gateway.config import Settings
from otp_gateway.services.auth_service import AuthService
from otp_gateway.services.phone_policy import PhonePolicy


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_phone_policy(request: Request) -> PhonePolicy:
    return request.app.state.phone_policy
