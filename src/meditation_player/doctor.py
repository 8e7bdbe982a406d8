"""Runtime diagnostics for audio backends and output devices."""

from __future__ import annotations

import importlib
from dataclasses import dataclass
from typing import Literal

DoctorStatus = Literal["ok", "missing", "error"]


@dataclass(frozen=True)
class DoctorCheck:
    """One environment readiness check result."""

    name: str
    status: DoctorStatus
    required: bool
    detail: str
    hint: str | None = None


@dataclass(frozen=True)
class DoctorReport:
    """Collection of doctor checks and derived process exit contract."""

    backend: str
    checks: list[DoctorCheck]

    @property
    def exit_code(self) -> int:
        """Return non-zero when any required check failed or is missing."""
        for check in self.checks:
            if check.required and check.status != "ok":
                return 2
        return 0


def run_doctor(backend: str) -> DoctorReport:
    """Run diagnostics for the selected source backend."""
    checks = [
        probe_numpy(),
        probe_vlc(required=backend == "vlc"),
        probe_sounddevice(required=False),
    ]
    return DoctorReport(backend=backend, checks=checks)


def render_report(report: DoctorReport) -> str:
    """Render terminal-friendly diagnostics report text."""
    lines = [f"meditation-player doctor (backend={report.backend})", ""]
    for check in report.checks:
        state = _status_token(check.status)
        req = "required" if check.required else "optional"
        lines.append(f"{state} {check.name:<11} [{req}] {check.detail}")
        if check.hint:
            lines.append(f"      hint: {check.hint}")
    lines.append("")
    lines.append("Result: OK" if report.exit_code == 0 else "Result: FAIL")
    return "\n".join(lines)


def probe_numpy() -> DoctorCheck:
    """Verify numpy importability (tone synthesis)."""
    try:
        module = importlib.import_module("numpy")
    except Exception as exc:
        return DoctorCheck(
            name="numpy",
            status="missing",
            required=True,
            detail=f"not importable ({exc.__class__.__name__})",
            hint="Install Python dependencies (pip install meditation-player).",
        )
    version = getattr(module, "__version__", None)
    detail = f"importable ({version})" if version else "importable"
    return DoctorCheck(name="numpy", status="ok", required=True, detail=detail)


def probe_vlc(*, required: bool) -> DoctorCheck:
    """Verify python-vlc import and libVLC runtime usability."""
    try:
        vlc = importlib.import_module("vlc")
    except Exception as exc:
        return DoctorCheck(
            name="vlc/libvlc",
            status="missing",
            required=required,
            detail=f"python-vlc import failed ({exc.__class__.__name__})",
            hint="Install VLC/libVLC and ensure python-vlc can locate libVLC.",
        )
    version = getattr(vlc, "__version__", "unknown")
    try:
        instance = vlc.Instance()
        # A media player proves the runtime bindings are usable.
        instance.media_player_new()
    except Exception as exc:
        return DoctorCheck(
            name="vlc/libvlc",
            status="error",
            required=required,
            detail=f"python-vlc {version}; libVLC runtime unavailable ({exc.__class__.__name__})",
            hint="Install VLC/libVLC and verify runtime library search path.",
        )
    release_text = _libvlc_version(vlc)
    return DoctorCheck(
        name="vlc/libvlc",
        status="ok",
        required=required,
        detail=f"python-vlc {version}; libVLC {release_text}",
    )


def probe_sounddevice(*, required: bool) -> DoctorCheck:
    """Verify PortAudio bindings and a default output device for the tone."""
    try:
        sd = importlib.import_module("sounddevice")
    except Exception as exc:
        return DoctorCheck(
            name="sounddevice",
            status="missing",
            required=required,
            detail=f"not importable ({exc.__class__.__name__})",
            hint="Install PortAudio; the calming tone is silent without it.",
        )
    try:
        info = sd.query_devices(None, "output")
    except Exception as exc:
        return DoctorCheck(
            name="sounddevice",
            status="error",
            required=required,
            detail=f"no default output device ({exc.__class__.__name__})",
            hint="Connect or enable an audio output device.",
        )
    name = info.get("name", "unknown") if isinstance(info, dict) else "unknown"
    rate = info.get("default_samplerate") if isinstance(info, dict) else None
    detail = f"output '{name}'" + (f" @ {int(rate)} Hz" if rate else "")
    return DoctorCheck(name="sounddevice", status="ok", required=required, detail=detail)


def _status_token(status: DoctorStatus) -> str:
    """Map doctor status to compact display token."""
    if status == "ok":
        return "[OK]"
    if status == "missing":
        return "[MISS]"
    return "[ERR]"


def _libvlc_version(vlc: object) -> str:
    """Best-effort extraction of libVLC runtime version string."""
    getter = getattr(vlc, "libvlc_get_version", None)
    if not callable(getter):
        return "detected"
    try:
        release = getter()
    except Exception:
        return "detected"
    if isinstance(release, bytes):
        return release.decode("utf-8", errors="replace")
    return str(release) if release else "detected"
