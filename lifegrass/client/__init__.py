from lifegrass.client.api import ApiError, ApiUnavailable, LifeGrassClient
from lifegrass.client.auth_flow import AuthenticationFailed, AuthFlowController, RegistrationForm
from lifegrass.client.cache import JsonFileStorage, LocalCache, MemoryStorage
from lifegrass.client.session import AuthState, MissingUsername, Session
from lifegrass.client.sync import SyncOrchestrator

__all__ = [
    "ApiError",
    "ApiUnavailable",
    "LifeGrassClient",
    "AuthenticationFailed",
    "AuthFlowController",
    "RegistrationForm",
    "JsonFileStorage",
    "LocalCache",
    "MemoryStorage",
    "AuthState",
    "MissingUsername",
    "Session",
    "SyncOrchestrator",
]
