from typing import Dict, Optional

from fastapi import HTTPException

from stripbooth.services.booth import BoothSession
from stripbooth.services.camera import camera_service
from stripbooth.services.compositor import compositor
from stripbooth.services.export import LocalExportAdapter, build_export_adapter
from stripbooth.services.websocket import websocket_manager

active_sessions: Dict[str, BoothSession] = {}
current_session: Optional[str] = None

_export_adapter = None
_download_store = None


def get_camera_service():
    return camera_service


def get_compositor():
    return compositor


def get_export_adapter():
    global _export_adapter
    if _export_adapter is None:
        _export_adapter = build_export_adapter()
    return _export_adapter


def get_download_store():
    global _download_store
    if _download_store is None:
        _download_store = LocalExportAdapter()
    return _download_store


def get_websocket_manager():
    return websocket_manager


def find_current_session() -> Optional[BoothSession]:
    if current_session is None:
        return None
    return active_sessions.get(current_session)


def get_current_session() -> BoothSession:
    session = find_current_session()
    if session is None:
        raise HTTPException(status_code=400, detail="No active session. Please create a session first.")
    return session


def activate_session(session: BoothSession):
    global current_session
    close_all_sessions()
    active_sessions[session.session_id] = session
    current_session = session.session_id


def close_all_sessions():
    global current_session
    for session in active_sessions.values():
        session.close()
    active_sessions.clear()
    current_session = None
