"""
FastAPI dependencies: components built once in create_app() and kept on app.state.
"""
from fastapi import Request

from relay_server.codes import CodeStore
from relay_server.config import Settings
from relay_server.github import GitHubClient
from relay_server.relay import RelayBridge
from relay_server.storage import EphemeralStore
from relay_server.tokens import TokenSigner


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> EphemeralStore:
    return request.app.state.store


def get_relay_bridge(request: Request) -> RelayBridge:
    return request.app.state.relay


def get_code_store(request: Request) -> CodeStore:
    return request.app.state.codes


def get_token_signer(request: Request) -> TokenSigner:
    return request.app.state.signer


def get_github(request: Request) -> GitHubClient:
    return request.app.state.github
