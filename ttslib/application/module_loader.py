from __future__ import annotations

import importlib.util
import re
import sys
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from importlib.machinery import EXTENSION_SUFFIXES, SOURCE_SUFFIXES
from pathlib import Path
from types import ModuleType

from ttslib.application.errors import (
    InitializationError,
    ModuleLoadError,
    PlatformUnsupportedError,
    SpeakerInstantiationError,
)
from ttslib.application.port.speaker import Speaker
from ttslib.domain.vo.module_descriptor import ModuleDescriptor
from ttslib.domain.vo.platform_id import Platform
from ttslib.utils.logger import Logger

SpeakerFactory = Callable[[], Speaker]
BuiltinModule = Callable[[], Sequence[SpeakerFactory]]

FACTORIES_EXPORT = "speaker_factories"
PREPARE_EXPORT = "prepare_resources"
LOAD_ORDER_FILE = "load_order.txt"


class FailureKind(str, Enum):
    PLATFORM_UNSUPPORTED = "platform_unsupported"
    MODULE_LOAD = "module_load"
    TYPE_INSTANTIATION = "type_instantiation"
    INITIALIZATION = "initialization"


@dataclass(frozen=True)
class LoadFailure:
    kind: FailureKind
    source: str
    message: str


class SpeakerLoader:
    """Discovers speaker modules on disk and keeps the first working one active.

    Layout: ``<modules_root>/<module name>/**/<file>``. Each importable file is
    a candidate and must export ``speaker_factories``, a sequence of
    zero-argument callables returning speakers. It may also export
    ``prepare_resources(module_dir)``, which runs once before the first of its
    factories is called.

    Broken candidates never abort a scan. They are logged and collected in
    ``failures`` so callers can see why nothing loaded.
    """

    def __init__(
        self,
        modules_root: Path,
        *,
        logger: Logger | None = None,
        platform: Platform | None = None,
        builtin_modules: Mapping[str, BuiltinModule] | None = None,
    ) -> None:
        self.modules_root = Path(modules_root)
        self.logger = logger or Logger()
        self.platform = platform or Platform.current()
        self.builtin_modules = dict(builtin_modules or {})

        self._speaker: Speaker | None = None
        self._failures: list[LoadFailure] = []

    @property
    def failures(self) -> list[LoadFailure]:
        """Failures collected by the most recent load call."""
        return list(self._failures)

    def get_speaker(self) -> Speaker | None:
        return self._speaker

    def available_modules(self) -> list[str]:
        if not self.modules_root.is_dir():
            return []
        return sorted(p.name for p in self.modules_root.iterdir() if p.is_dir())

    def load(self, module_name: str) -> bool:
        """Load the first working speaker from ``<modules_root>/<module_name>``.

        A missing directory is created and the call fails, which tells
        "nothing installed yet" apart from "installed but broken".
        """

        self._failures = []

        if not _is_plain_segment(module_name):
            self._record(FailureKind.MODULE_LOAD, module_name, "Module name must be a single directory name.")
            return False

        module_dir = self.modules_root / module_name
        if not module_dir.is_dir():
            try:
                module_dir.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                self._record(FailureKind.MODULE_LOAD, str(module_dir), f"Cannot create module directory: {exc}")
                return False
            self.logger.info(f"Created module directory {module_dir}; no modules installed yet.")
            return False

        speaker = self._scan_directory(module_dir)
        if speaker is None:
            self.logger.warning(f"No working speaker found in module '{module_name}'.")
            return False

        self._activate(speaker)
        return True

    def load_any(self) -> bool:
        """Try every installed module directory in name order."""

        self._failures = []

        if not self.modules_root.is_dir():
            try:
                self.modules_root.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                self._record(FailureKind.MODULE_LOAD, str(self.modules_root), f"Cannot create modules root: {exc}")
                return False
            self.logger.info(f"Created modules root {self.modules_root}; no modules installed yet.")
            return False

        for module_name in self.available_modules():
            speaker = self._scan_directory(self.modules_root / module_name)
            if speaker is not None:
                self._activate(speaker)
                return True

        self.logger.warning(f"No working speaker found under {self.modules_root}.")
        return False

    def load_builtin(self, name: str) -> bool:
        """Load one of the adapters registered in ``builtin_modules``."""

        self._failures = []

        module = self.builtin_modules.get(name)
        if module is None:
            known = ", ".join(sorted(self.builtin_modules)) or "none"
            self._record(FailureKind.MODULE_LOAD, name, f"Unknown built-in module (available: {known}).")
            return False

        try:
            factories = list(module())
        except Exception as exc:
            self._record(FailureKind.MODULE_LOAD, name, f"Built-in module unavailable: {exc}")
            return False

        speaker = self._first_working(factories, source=name)
        if speaker is None:
            self.logger.warning(f"Built-in module '{name}' produced no working speaker.")
            return False

        self._activate(speaker)
        return True

    def unload(self) -> None:
        if self._speaker is None:
            return

        speaker, self._speaker = self._speaker, None
        if not speaker.teardown():
            self.logger.warning(f"Speaker '{speaker.descriptor.name}' was already torn down.")
        else:
            self.logger.info(f"Unloaded speaker '{speaker.descriptor.name}'.")

    def _activate(self, speaker: Speaker) -> None:
        previous = self._speaker
        self._speaker = speaker
        self.logger.info(f"Loaded speaker '{speaker.descriptor.name}' ({speaker.descriptor.description}).")

        if previous is not None and previous is not speaker:
            previous.teardown()

    def _scan_directory(self, module_dir: Path) -> Speaker | None:
        pending = self._candidate_files(module_dir)
        reordered = False

        while pending:
            path = pending.pop(0)
            try:
                module = self._import_module(module_dir, path)
            except ModuleLoadError as exc:
                self._record(FailureKind.MODULE_LOAD, str(path), str(exc))
                continue

            try:
                factories = self._factories_of(module, path)
            except ModuleLoadError as exc:
                sys.modules.pop(module.__name__, None)
                self._record(FailureKind.MODULE_LOAD, str(path), str(exc))
                continue

            # The first descriptor that declares a load order decides how the
            # remaining files are tried.
            if not reordered:
                load_order = _declared_load_order(factories)
                if load_order:
                    pending = _apply_load_order(pending, load_order, module_dir)
                    reordered = True

            prepare = getattr(module, PREPARE_EXPORT, None)
            speaker = self._first_working(
                factories,
                source=str(path),
                prepare=(lambda: prepare(module_dir)) if callable(prepare) else None,
            )
            if speaker is not None:
                return speaker
        return None

    def _candidate_files(self, module_dir: Path) -> list[Path]:
        suffixes = tuple(SOURCE_SUFFIXES + EXTENSION_SUFFIXES)
        files = sorted(
            path
            for path in module_dir.rglob("*")
            if path.is_file() and path.name.endswith(suffixes) and "__pycache__" not in path.parts
        )

        order_file = module_dir / LOAD_ORDER_FILE
        if not order_file.is_file():
            return files

        entries = [
            line.strip()
            for line in order_file.read_text(encoding="utf-8").splitlines()
            if line.strip() and not line.strip().startswith("#")
        ]
        return _apply_load_order(files, entries, module_dir)

    def _import_module(self, module_dir: Path, path: Path) -> ModuleType:
        module_name = _module_name(module_dir, path)
        spec = importlib.util.spec_from_file_location(module_name, path)
        if spec is None or spec.loader is None:
            raise ModuleLoadError(f"{path.name} is not an importable module.")

        try:
            module = importlib.util.module_from_spec(spec)
            sys.modules[module_name] = module
            spec.loader.exec_module(module)
        except Exception as exc:
            sys.modules.pop(module_name, None)
            raise ModuleLoadError(f"Could not load {path.name}: {exc}") from exc

        return module

    def _factories_of(self, module: ModuleType, path: Path) -> list[SpeakerFactory]:
        exported = getattr(module, FACTORIES_EXPORT, None)
        if exported is None:
            raise ModuleLoadError(f"{path.name} does not export '{FACTORIES_EXPORT}'.")
        if not isinstance(exported, Iterable) or isinstance(exported, (str, bytes)):
            raise ModuleLoadError(f"'{FACTORIES_EXPORT}' in {path.name} must be a sequence of factories.")

        factories = list(exported)
        for factory in factories:
            if not callable(factory):
                raise ModuleLoadError(f"'{FACTORIES_EXPORT}' in {path.name} contains a non-callable: {factory!r}")
        return factories

    def _first_working(
        self,
        factories: Iterable[SpeakerFactory],
        *,
        source: str,
        prepare: Callable[[], None] | None = None,
    ) -> Speaker | None:
        prepared = prepare is None

        for factory in factories:
            label = _factory_label(factory, source)

            declared = getattr(factory, "descriptor", None)
            if isinstance(declared, ModuleDescriptor):
                try:
                    self._check_platform(declared)
                except PlatformUnsupportedError as exc:
                    self._record(FailureKind.PLATFORM_UNSUPPORTED, label, str(exc))
                    continue

            if not prepared:
                try:
                    prepare()
                except Exception as exc:
                    self._record(FailureKind.MODULE_LOAD, source, f"Resource preparation failed: {exc}")
                    return None
                prepared = True

            try:
                speaker = self._instantiate(factory, label)
            except SpeakerInstantiationError as exc:
                self._record(FailureKind.TYPE_INSTANTIATION, label, str(exc))
                continue

            try:
                self._check_platform(speaker.descriptor)
                self._initialize(speaker, label)
            except PlatformUnsupportedError as exc:
                self._record(FailureKind.PLATFORM_UNSUPPORTED, label, str(exc))
                continue
            except InitializationError as exc:
                self._record(FailureKind.INITIALIZATION, label, str(exc))
                continue

            return speaker

        return None

    def _instantiate(self, factory: SpeakerFactory, label: str) -> Speaker:
        try:
            speaker = factory()
        except Exception as exc:
            raise SpeakerInstantiationError(f"Error creating instance of {label}: {exc}") from exc

        if not isinstance(speaker, Speaker):
            raise SpeakerInstantiationError(f"{label} returned {type(speaker).__name__}, which is not a Speaker.")

        try:
            descriptor = speaker.descriptor
        except Exception as exc:
            raise SpeakerInstantiationError(f"Could not read the descriptor of {label}: {exc}") from exc
        if not isinstance(descriptor, ModuleDescriptor):
            raise SpeakerInstantiationError(
                f"{label} has a {type(descriptor).__name__} descriptor, not a ModuleDescriptor."
            )
        return speaker

    def _initialize(self, speaker: Speaker, label: str) -> None:
        try:
            ok = speaker.initialize()
        except Exception as exc:
            raise InitializationError(f"{label} raised during initialize: {exc}") from exc

        if not ok:
            raise InitializationError(f"{label} failed to initialize.")

    def _check_platform(self, descriptor: ModuleDescriptor) -> None:
        if not descriptor.supports_platform(self.platform):
            raise PlatformUnsupportedError(f"Module '{descriptor.name}' does not support {self.platform.value}.")

    def _record(self, kind: FailureKind, source: str, message: str) -> None:
        self._failures.append(LoadFailure(kind=kind, source=source, message=message))
        if kind is FailureKind.PLATFORM_UNSUPPORTED:
            self.logger.info(message)
        else:
            self.logger.warning(message)


def _is_plain_segment(name: str) -> bool:
    return bool(name) and name not in (".", "..") and Path(name).name == name and "\\" not in name


def _declared_load_order(factories: Iterable[SpeakerFactory]) -> tuple[str, ...]:
    for factory in factories:
        declared = getattr(factory, "descriptor", None)
        if isinstance(declared, ModuleDescriptor) and declared.load_order:
            return declared.load_order
    return ()


def _apply_load_order(files: list[Path], entries: Iterable[str], module_dir: Path) -> list[Path]:
    """Move files named in ``entries`` to the front, in entry order.

    An entry matches a path relative to ``module_dir`` or a bare file name.
    """

    ordered: list[Path] = []
    for entry in entries:
        for path in files:
            if path not in ordered and (path.relative_to(module_dir).as_posix() == entry or path.name == entry):
                ordered.append(path)
    return ordered + [path for path in files if path not in ordered]


def _module_name(module_dir: Path, path: Path) -> str:
    stem = path.name.split(".", 1)[0]
    if not any(path.name.endswith(suffix) for suffix in SOURCE_SUFFIXES):
        # Extension modules must be imported under the name their init function uses.
        return stem

    relative = path.relative_to(module_dir).with_suffix("").as_posix()
    slug = re.sub(r"\W", "_", f"{module_dir.name}_{relative}")
    return f"_ttslib_module_{slug}"


def _factory_label(factory: SpeakerFactory, source: str) -> str:
    name = getattr(factory, "__qualname__", None) or type(factory).__name__
    module = getattr(factory, "__module__", None)
    return f"{module}.{name}" if module and not module.startswith("_ttslib_module_") else f"{name} ({source})"
