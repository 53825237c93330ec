"""Clip assembly: fetch, concatenate, optionally mix, export."""

from docuvid.assembly.engine import (
    AssemblyBusyError,
    AssemblyEngine,
    AssemblyOutput,
    Clip,
    ProcessingProgress,
    acquire_engine,
    engine_busy,
    get_engine,
    teardown_engine,
)

__all__ = [
    "AssemblyBusyError",
    "AssemblyEngine",
    "AssemblyOutput",
    "Clip",
    "ProcessingProgress",
    "acquire_engine",
    "engine_busy",
    "get_engine",
    "teardown_engine",
]
