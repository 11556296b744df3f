"""
Device gateway.

Responsibilities:
- Owns the settings snapshot (palette, conflicts, device/voice records)
  and threads it by value into the resolver, codec and scheduler
- Imports tables (xlsx or raw grid), validating palette references and
  applying the table's LED count to the device record
- Starts runs: precheck -> resolve -> new run log -> CONFIG frames -> plan
- Routes caller commands (next / rerun / reset / device tests) and inbound
  transport lines into the scheduler
- Serializes every scheduler call behind one lock (single writer)

Still NOT responsible for:
- Any scheduling decision (reducer)
- Byte-level transport I/O (adapters)
- Presentation
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, replace
from typing import Any, Callable, Optional, Sequence, TYPE_CHECKING

import numpy as np

from constants import MIN_DEVICE_LED_COUNT, VOICE_SET_PRIMARY, VOICE_SET_SECONDARY
from importer.table_parser import ParsedTable, TableParseError, parse_table
from importer.xlsx_reader import WorkbookError, read_xlsx
from observability.logger import log_event
from observability.metrics import timed
from observability.run_log import LogType, RunLog
from orchestrator.runtime import SegmentScheduler
from orchestrator.runtime_context import Listener, Transport, TransportError
from orchestrator.state_dataclass import SchedulerState
from plan.actions import ActionKind, LedAction
from protocol.text_frames import (
    ProtocolError,
    pack_beep_config,
    pack_beep_test,
    pack_led_config,
    pack_test_all_off,
    pack_test_solid,
    pack_voice_config,
    pack_voice_test,
)
from resolver.color_resolver import ColorResolveError, ResolveIssue, precheck, resolve
from settings.palette import (
    ConflictTriple,
    PaletteError,
    add_color,
    clamp_conflicts,
    remove_color,
    set_color,
)
from settings.records import DeviceProps, SerialConfig, SettingsData, VoiceProps
from settings.store import JsonSettingsStore, SettingsError

if TYPE_CHECKING:
    from config import AppConfig

# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _now_ms() -> int:
    return time.time_ns() // 1_000_000


# ------------------------------------------------------------------
# Gateway result
# ------------------------------------------------------------------

@dataclass(frozen=True)
class GatewayResult:
    """
    Return value for gateway boundary methods.

    error:
        human-readable reason when ok is False
    issues:
        per-action resolver issues (run start only)
    """
    ok: bool = True
    error: str | None = None
    issues: tuple[ResolveIssue, ...] = ()


def _fail(
    operation: str,
    error: str,
    *,
    issues: tuple[ResolveIssue, ...] = (),
    **extra: Any,
) -> GatewayResult:
    log_event({
        "ts_ms": _now_ms(),
        "event_type": "GATEWAY_ERROR",
        "operation": operation,
        "error": error,
        "issues": [str(i) for i in issues],
        **extra,
    })
    return GatewayResult(ok=False, error=error, issues=issues)


def check_palette_references(table: ParsedTable, settings: SettingsData) -> str | None:
    """Fixed LED colors must name existing palette entries."""
    known = {item.index for item in settings.palette}
    for action in table.actions:
        if not isinstance(action, LedAction):
            continue
        for color in action.colors:
            if color <= 0:
                continue
            if not known:
                return f"palette is empty, cannot use color {color} ({action.flow_name})"
            if color not in known:
                return f"color {color} is not in the palette ({action.flow_name})"
    return None


# ------------------------------------------------------------------
# DeviceGateway
# ------------------------------------------------------------------

class DeviceGateway:
    """One gateway == one device connection and its loaded table."""

    def __init__(
        self,
        *,
        config: AppConfig,
        transport: Transport,
        store: Optional[JsonSettingsStore] = None,
        run_log: Optional[RunLog] = None,
        listener: Optional[Listener] = None,
        rng: Optional[np.random.Generator] = None,
        monotonic_ms: Optional[Callable[[], int]] = None,
    ) -> None:
        self._config = config
        self._transport = transport
        self._store = store if store is not None else JsonSettingsStore(config.settings_path)
        self._settings = self._load_settings()
        self._run_log = run_log if run_log is not None else RunLog(
            config.log_dir if config.enable_run_log else None
        )
        self._listener = listener
        self._lock = threading.RLock()
        self._table: ParsedTable | None = None

        scheduler_kwargs: dict[str, Any] = {}
        if monotonic_ms is not None:
            scheduler_kwargs["monotonic_ms"] = monotonic_ms
        self._scheduler = SegmentScheduler(
            transport=transport,
            run_log=self._run_log,
            listener=self._on_notification,
            rng=rng,
            json_logs=config.enable_json_logs,
            **scheduler_kwargs,
        )
        self._run_log.set_line_callback(self._on_log_line)
        transport.subscribe(self.on_frame_received)

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def settings(self) -> SettingsData:
        return self._settings

    @property
    def table(self) -> ParsedTable | None:
        return self._table

    @property
    def scheduler_state(self) -> SchedulerState:
        return self._scheduler.state

    @property
    def run_log(self) -> RunLog:
        return self._run_log

    def now_device_ms(self) -> int:
        with self._lock:
            return self._scheduler.now_device_ms()

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    def import_table(self, path: str) -> GatewayResult:
        """Read the first sheet of an .xlsx file and import it."""
        try:
            sheet = read_xlsx(path)
        except WorkbookError as e:
            return _fail("import_table", str(e), path=path)
        result = self.import_grid(sheet.cells, sheet.merged_regions, source=path)
        if result.ok:
            with self._lock:
                self._settings = replace(self._settings, last_table_path=path)
        return result

    def import_grid(
        self,
        grid: Sequence[Sequence[object]],
        merged_regions: Sequence[tuple[int, int, int, int]] = (),
        *,
        source: str = "",
    ) -> GatewayResult:
        try:
            with timed("table_parse", details={"source": source}):
                table = parse_table(grid, merged_regions)
        except TableParseError as e:
            return _fail("import_table", str(e), source=source)

        with self._lock:
            problem = check_palette_references(table, self._settings)
            if problem is not None:
                return _fail("import_table", problem, source=source)

            if table.led_count > 0:
                led_count = max(table.led_count, MIN_DEVICE_LED_COUNT)
                self._settings = replace(
                    self._settings,
                    device=replace(self._settings.device, led_count=led_count),
                )
            self._table = table

        log_event({
            "ts_ms": _now_ms(),
            "event_type": "TABLE_IMPORTED",
            "source": source,
            "action_count": len(table.actions),
            "row_count": len(table.rows),
            "led_count": self._settings.device.led_count,
            "has_wildcard": table.has_wildcard_color(),
            "has_voice": table.has_kind(ActionKind.VOICE),
        })
        return GatewayResult()

    # ------------------------------------------------------------------
    # Run control
    # ------------------------------------------------------------------

    def precheck(self) -> GatewayResult:
        with self._lock:
            if self._table is None:
                return _fail("precheck", "no table imported")
            with timed("color_precheck"):
                issues = precheck(
                    self._table.actions,
                    self._settings.palette,
                    self._settings.conflicts,
                    self._settings.device.led_count,
                )
        if issues:
            return _fail("precheck", "; ".join(str(i) for i in issues), issues=issues)
        return GatewayResult()

    def start_run(self) -> GatewayResult:
        """Resolve colors, open a new run log, push CONFIG frames, load the plan."""
        with self._lock:
            checked = self.precheck()
            if not checked.ok:
                return checked
            assert self._table is not None
            try:
                with timed("color_resolve"):
                    resolved = resolve(
                        self._table.actions,
                        self._settings.palette,
                        self._settings.conflicts,
                        self._settings.device.led_count,
                    )
            except ColorResolveError as e:
                return _fail("start_run", str(e), issues=e.issues)

            self._scheduler.begin_run()
            configs = self._send_configs_locked()
            self._scheduler.load_plan(resolved)

        log_event({
            "ts_ms": _now_ms(),
            "event_type": "RUN_STARTED",
            "segment_count": len(self._scheduler.state.segments),
            "configs_sent": configs.ok,
        })
        return GatewayResult()

    def send_configs(self) -> GatewayResult:
        with self._lock:
            return self._send_configs_locked()

    def next_segment(self) -> GatewayResult:
        with self._lock:
            if self._scheduler.advance(self._settings.device):
                return GatewayResult()
            if not self._transport.is_open():
                return GatewayResult(ok=False, error="serial port not open")
            state = self._scheduler.state
            if state.last_error is not None:
                return GatewayResult(ok=False, error=state.last_error)
            return GatewayResult(ok=False, error="no segment dispatched")

    def mark_rerun(self) -> GatewayResult:
        with self._lock:
            self._scheduler.mark_rerun()
            if self._scheduler.state.marked_rerun_segment < 0:
                return GatewayResult(ok=False, error="no segment to rerun")
        return GatewayResult()

    def reset(self) -> None:
        with self._lock:
            self._scheduler.reset()

    def on_frame_received(self, text: str) -> None:
        """Transport callback; may run on the transport's reader thread."""
        with self._lock:
            self._scheduler.on_frame_received(text)

    # ------------------------------------------------------------------
    # Device tests
    # ------------------------------------------------------------------

    def test_color(self, color_index: int) -> GatewayResult:
        return self._send_test(pack_test_solid(color_index))

    def test_all_off(self) -> GatewayResult:
        return self._send_test(pack_test_all_off())

    def test_beep(self) -> GatewayResult:
        return self._send_test(pack_beep_test())

    def test_voice(self, text: str, style: int = VOICE_SET_PRIMARY) -> GatewayResult:
        return self._send_test(pack_voice_test(text, style))

    # ------------------------------------------------------------------
    # Settings editing
    # ------------------------------------------------------------------

    def add_color(self, rgb: Sequence[int]) -> GatewayResult:
        with self._lock:
            try:
                palette = add_color(self._settings.palette, rgb)
            except PaletteError as e:
                return _fail("add_color", str(e))
            self._settings = replace(self._settings, palette=palette)
        return GatewayResult()

    def set_color(self, position: int, rgb: Sequence[int]) -> GatewayResult:
        with self._lock:
            try:
                palette = set_color(self._settings.palette, position, rgb)
            except (PaletteError, IndexError) as e:
                return _fail("set_color", str(e))
            self._settings = replace(self._settings, palette=palette)
        return GatewayResult()

    def remove_color(self, position: int) -> GatewayResult:
        with self._lock:
            try:
                palette, conflicts = remove_color(
                    self._settings.palette, self._settings.conflicts, position
                )
            except IndexError as e:
                return _fail("remove_color", str(e))
            self._settings = replace(self._settings, palette=palette, conflicts=conflicts)
        return GatewayResult()

    def set_conflicts(self, conflicts: Sequence[ConflictTriple]) -> None:
        with self._lock:
            self._settings = replace(
                self._settings,
                conflicts=clamp_conflicts(conflicts, len(self._settings.palette)),
            )

    def update_device(self, device: DeviceProps) -> None:
        with self._lock:
            self._settings = replace(self._settings, device=device)

    def update_voice(self, slot: int, voice: VoiceProps) -> GatewayResult:
        with self._lock:
            if slot == VOICE_SET_PRIMARY:
                self._settings = replace(self._settings, voice1=voice)
            elif slot == VOICE_SET_SECONDARY:
                self._settings = replace(self._settings, voice2=voice)
            else:
                return _fail("update_voice", f"voice slot must be 1 or 2, got {slot}")
        return GatewayResult()

    def update_serial(self, serial_config: SerialConfig) -> None:
        with self._lock:
            self._settings = replace(self._settings, serial=serial_config)

    def save_settings(self) -> GatewayResult:
        with self._lock:
            snapshot = self._settings
        try:
            self._store.save(snapshot)
        except SettingsError as e:
            return _fail("save_settings", str(e))
        return GatewayResult()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load_settings(self) -> SettingsData:
        try:
            return self._store.load()
        except SettingsError as e:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "SETTINGS_LOAD_FAILED",
                "path": self._store.path,
                "error": str(e),
            })
            return SettingsData()

    def _send_configs_locked(self) -> GatewayResult:
        if not self._transport.is_open():
            return GatewayResult(ok=False, error="serial port not open")
        s = self._settings
        try:
            frames = (
                pack_led_config(s.device, s.palette),
                pack_voice_config(s.voice1, VOICE_SET_PRIMARY),
                pack_voice_config(s.voice2, VOICE_SET_SECONDARY),
                pack_beep_config(s.device),
            )
            for frame in frames:
                self._transport.send(frame)
                self._scheduler.log_tx(LogType.CONFIG, frame)
        except (TransportError, ProtocolError) as e:
            return _fail("send_configs", str(e))
        return GatewayResult()

    def _send_test(self, frame: str) -> GatewayResult:
        with self._lock:
            if not self._transport.is_open():
                return GatewayResult(ok=False, error="serial port not open")
            try:
                self._transport.send(frame)
            except TransportError as e:
                return _fail("send_test", str(e))
            self._scheduler.log_tx(LogType.TEST, frame)
        return GatewayResult()

    def _on_notification(self, kind: str, payload: dict[str, Any]) -> None:
        if self._listener is not None:
            self._listener(kind, payload)

    def _on_log_line(self, line: str) -> None:
        if self._listener is not None:
            self._listener("log_line", {"line": line})
