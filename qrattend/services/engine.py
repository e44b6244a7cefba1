"""Wiring of the session engine into a Flask application."""
from dataclasses import dataclass

from flask import Flask, current_app

from qrattend.services.domain import EngineSettings
from qrattend.services.memory_store import InMemorySessionStore
from qrattend.services.payload_codec import PayloadCodec
from qrattend.services.record_store import SQLAttendanceRecordStore
from qrattend.services.roster import SQLRosterLookup
from qrattend.services.scan_processor import ScanProcessor
from qrattend.services.session_manager import SessionManager
from qrattend.services.session_store import SQLSessionStore

EXTENSION_KEY = 'qrattend'


@dataclass
class Engine:
    manager: SessionManager
    scanner: ScanProcessor


def build_store(backend: str):
    if backend == 'sql':
        return SQLSessionStore()
    if backend == 'memory':
        return InMemorySessionStore()
    raise ValueError(f"Unknown SESSION_STORE backend: {backend}")


def init_engine(app: Flask) -> Engine:
    """Build the engine from app config and register it on the app."""
    settings = EngineSettings.from_config(app.config)
    codec = PayloadCodec(app.config['QR_ENCRYPTION_KEY'])
    store = build_store(app.config.get('SESSION_STORE', 'sql'))
    roster = SQLRosterLookup()

    engine = Engine(
        manager=SessionManager(
            store, codec, roster,
            settings=settings,
            record_store=SQLAttendanceRecordStore()
        ),
        scanner=ScanProcessor(store, codec, roster, settings=settings)
    )
    app.extensions[EXTENSION_KEY] = engine
    return engine


def get_engine() -> Engine:
    return current_app.extensions[EXTENSION_KEY]
