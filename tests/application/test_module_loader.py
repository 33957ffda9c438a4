"""Unit tests for SpeakerLoader."""
from __future__ import annotations

import sys
import tempfile
import textwrap
import unittest
from importlib.machinery import EXTENSION_SUFFIXES
from pathlib import Path

from ttslib.application.lifecycle import SpeakerLifecycle, SpeakerState, unsupported
from ttslib.application.module_loader import FailureKind, SpeakerLoader
from ttslib.application.port.speaker import Speaker
from ttslib.domain.vo.module_descriptor import ModuleDescriptor
from ttslib.domain.vo.platform_id import Platform
from ttslib.utils.logger import Logger

PLUGIN_BODY = textwrap.dedent(
    """
    from pathlib import Path

    from ttslib.application.lifecycle import SpeakerLifecycle, unsupported
    from ttslib.domain.vo.module_descriptor import ModuleDescriptor
    from ttslib.domain.vo.platform_id import Platform

    HERE = Path(__file__)


    class FakeSpeaker:
        descriptor = ModuleDescriptor(
            name=NAME,
            description="fake speaker",
            version="1.0.0.0",
            authors="tests",
            supported_platforms=frozenset(Platform(p) for p in PLATFORMS),
            supported_languages={"en-US": "en"},
            load_order=tuple(LOAD_ORDER),
        )

        def __init__(self):
            if RAISE_ON_CONSTRUCT:
                raise RuntimeError("constructor exploded")
            HERE.with_suffix(".constructed").touch()
            self._lifecycle = SpeakerLifecycle()

        @property
        def state(self):
            return self._lifecycle.state

        @property
        def is_ready(self):
            return self._lifecycle.is_ready

        @property
        def supported_languages(self):
            return self.descriptor.supported_languages

        def initialize(self):
            HERE.with_suffix(".initialized").touch()
            return INIT_RESULT and self._lifecycle.mark_ready()

        def synthesize_bytes(self, text):
            return b"\\x00\\x80" if self.is_ready else b""

        def synthesize_to_file(self, text, directory, file_name):
            return self.is_ready

        def synthesize_to_device(self, text):
            return self.is_ready

        def change_language(self, locale):
            return self.is_ready and locale in self.supported_languages

        def set_volume(self, volume):
            return self.is_ready

        def set_gender(self, gender):
            return self.is_ready

        def set_speaking_rate(self, rate):
            return self.is_ready

        def set_pitch(self, pitch):
            return unsupported("pitch")

        def set_age(self, age):
            return unsupported("age")

        def set_accent(self, accent):
            return unsupported("accent")

        def teardown(self):
            return self._lifecycle.mark_torn_down()


    speaker_factories = [(lambda: FakeSpeaker()) if WRAP_IN_LAMBDA else FakeSpeaker]
    """
)


def write_plugin(
    directory: Path,
    file_name: str,
    *,
    name: str = "Fake",
    platforms: tuple[str, ...] = ("linux",),
    init_result: bool = True,
    raise_on_construct: bool = False,
    wrap_in_lambda: bool = False,
    load_order: tuple[str, ...] = (),
    extra: str = "",
) -> Path:
    header = (
        f"NAME = {name!r}\n"
        f"PLATFORMS = {list(platforms)!r}\n"
        f"INIT_RESULT = {init_result!r}\n"
        f"RAISE_ON_CONSTRUCT = {raise_on_construct!r}\n"
        f"WRAP_IN_LAMBDA = {wrap_in_lambda!r}\n"
        f"LOAD_ORDER = {list(load_order)!r}\n"
    )
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / file_name
    path.write_text(header + PLUGIN_BODY + extra, encoding="utf-8")
    return path


class TestSpeakerLoader(unittest.TestCase):
    """Test cases for SpeakerLoader."""

    def setUp(self):
        """Set up test fixtures."""
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.root = Path(self._tmp.name) / "TTSLib"
        self.logger = Logger()
        self.loader = SpeakerLoader(self.root, logger=self.logger, platform=Platform.LINUX)

    def kinds(self) -> list[FailureKind]:
        return [failure.kind for failure in self.loader.failures]

    def test_missing_directory_is_created_and_load_fails(self):
        """Test that loading an absent module creates its directory and returns False."""
        self.assertFalse(self.loader.load("FonixTalk"))
        self.assertTrue((self.root / "FonixTalk").is_dir())
        self.assertIsNone(self.loader.get_speaker())

        # Still empty: fails again without raising.
        self.assertFalse(self.loader.load("FonixTalk"))
        self.assertEqual(self.loader.failures, [])

    def test_loads_first_working_speaker(self):
        """Test the happy path."""
        write_plugin(self.root / "Fake", "fake_speaker.py")

        self.assertTrue(self.loader.load("Fake"))

        speaker = self.loader.get_speaker()
        self.assertIsNotNone(speaker)
        self.assertTrue(speaker.is_ready)
        self.assertEqual(speaker.descriptor.name, "Fake")
        self.assertEqual(speaker.synthesize_bytes("Hello"), b"\x00\x80")

    def test_get_speaker_has_no_side_effects(self):
        """Test that repeated get_speaker calls return the same instance."""
        write_plugin(self.root / "Fake", "fake_speaker.py")
        self.loader.load("Fake")

        self.assertIs(self.loader.get_speaker(), self.loader.get_speaker())
        self.assertIs(self.loader.get_speaker().state, SpeakerState.READY)

    def test_platform_excluded_speaker_is_never_constructed(self):
        """Test that a class-level descriptor excluding the platform skips the type."""
        plugin = write_plugin(self.root / "WinOnly", "win_speaker.py", platforms=("windows",))

        self.assertFalse(self.loader.load("WinOnly"))

        self.assertFalse(plugin.with_suffix(".constructed").exists())
        self.assertFalse(plugin.with_suffix(".initialized").exists())
        self.assertEqual(self.kinds(), [FailureKind.PLATFORM_UNSUPPORTED])

    def test_platform_excluded_instance_is_never_initialized(self):
        """Test the post-construction platform check for factories without a descriptor."""
        plugin = write_plugin(self.root / "WinOnly", "win_speaker.py", platforms=("windows",), wrap_in_lambda=True)

        self.assertFalse(self.loader.load("WinOnly"))

        self.assertTrue(plugin.with_suffix(".constructed").exists())
        self.assertFalse(plugin.with_suffix(".initialized").exists())
        self.assertEqual(self.kinds(), [FailureKind.PLATFORM_UNSUPPORTED])

    def test_unloadable_files_do_not_abort_the_scan(self):
        """Test that broken candidates are skipped and recorded."""
        module_dir = self.root / "Mixed"
        module_dir.mkdir(parents=True)
        (module_dir / "a_native_payload.py").write_text("this is not python at all", encoding="utf-8")
        (module_dir / ("b_payload" + EXTENSION_SUFFIXES[-1])).write_bytes(b"\x00not a shared object")
        (module_dir / "c_no_export.py").write_text("VALUE = 1\n", encoding="utf-8")
        (module_dir / "readme.txt").write_text("ignored", encoding="utf-8")
        write_plugin(module_dir, "d_speaker.py")

        self.assertTrue(self.loader.load("Mixed"))

        self.assertEqual(self.kinds(), [FailureKind.MODULE_LOAD] * 3)
        self.assertEqual(self.loader.get_speaker().descriptor.name, "Fake")
        self.assertTrue(any("[WARNING]" in line for line in self.logger.lines))

    def test_constructor_failure_is_recorded_and_skipped(self):
        """Test that a factory raising during construction does not stop the scan."""
        module_dir = self.root / "Engines"
        write_plugin(module_dir, "a_broken.py", name="Broken", raise_on_construct=True)
        write_plugin(module_dir, "b_working.py", name="Working")

        self.assertTrue(self.loader.load("Engines"))

        self.assertEqual(self.kinds(), [FailureKind.TYPE_INSTANTIATION])
        self.assertIn("constructor exploded", self.loader.failures[0].message)
        self.assertEqual(self.loader.get_speaker().descriptor.name, "Working")

    def test_initialize_failure_continues_scanning(self):
        """Test that a speaker whose initialize returns False is discarded."""
        module_dir = self.root / "Engines"
        write_plugin(module_dir, "a_refuses.py", name="Refuses", init_result=False)
        write_plugin(module_dir, "b_working.py", name="Working")

        self.assertTrue(self.loader.load("Engines"))

        self.assertEqual(self.kinds(), [FailureKind.INITIALIZATION])
        self.assertEqual(self.loader.get_speaker().descriptor.name, "Working")

    def test_failed_load_keeps_previous_speaker(self):
        """Test that a failed load leaves the active speaker untouched."""
        write_plugin(self.root / "Good", "good.py", name="Good")
        write_plugin(self.root / "Bad", "bad.py", name="Bad", init_result=False)
        self.assertTrue(self.loader.load("Good"))
        previous = self.loader.get_speaker()

        self.assertFalse(self.loader.load("Bad"))

        self.assertIs(self.loader.get_speaker(), previous)
        self.assertTrue(previous.is_ready)

    def test_successful_load_tears_down_previous_speaker(self):
        """Test that replacing the active speaker releases the old one."""
        write_plugin(self.root / "First", "first.py", name="First")
        write_plugin(self.root / "Second", "second.py", name="Second")
        self.loader.load("First")
        first = self.loader.get_speaker()

        self.assertTrue(self.loader.load("Second"))

        self.assertIs(first.state, SpeakerState.TORN_DOWN)
        self.assertEqual(self.loader.get_speaker().descriptor.name, "Second")

    def test_non_speaker_factory_result_is_rejected(self):
        """Test that a factory returning something else is a type instantiation failure."""
        module_dir = self.root / "Odd"
        module_dir.mkdir(parents=True)
        (module_dir / "odd.py").write_text("speaker_factories = [object]\n", encoding="utf-8")

        self.assertFalse(self.loader.load("Odd"))
        self.assertEqual(self.kinds(), [FailureKind.TYPE_INSTANTIATION])

    def test_prepare_resources_runs_before_construction(self):
        """Test the two-phase resource preparation hook."""
        extra = textwrap.dedent(
            """
            PREPARED = []


            def prepare_resources(module_dir):
                assert not HERE.with_suffix(".constructed").exists()
                (module_dir / "payload.bin").write_bytes(b"payload")
            """
        )
        module_dir = self.root / "Native"
        write_plugin(module_dir, "native.py", extra=extra)

        self.assertTrue(self.loader.load("Native"))
        self.assertEqual((module_dir / "payload.bin").read_bytes(), b"payload")

    def test_prepare_resources_failure_skips_module(self):
        """Test that a failing resource step skips the file without constructing."""
        extra = textwrap.dedent(
            """
            def prepare_resources(module_dir):
                raise OSError("cannot extract ftalk_us.dll")
            """
        )
        plugin = write_plugin(self.root / "Native", "native.py", extra=extra)

        self.assertFalse(self.loader.load("Native"))

        self.assertFalse(plugin.with_suffix(".constructed").exists())
        self.assertEqual(self.kinds(), [FailureKind.MODULE_LOAD])
        self.assertIn("ftalk_us.dll", self.loader.failures[0].message)

    def test_load_order_file_is_respected(self):
        """Test that load_order.txt entries are tried before the rest."""
        module_dir = self.root / "Ordered"
        write_plugin(module_dir, "a_speaker.py", name="A")
        write_plugin(module_dir / "sub", "b_speaker.py", name="B")
        (module_dir / "load_order.txt").write_text("# preferred first\nsub/b_speaker.py\n", encoding="utf-8")

        self.assertTrue(self.loader.load("Ordered"))
        self.assertEqual(self.loader.get_speaker().descriptor.name, "B")

    def test_descriptor_load_order_reorders_remaining_files(self):
        """Test that a descriptor's load order decides which files are tried next."""
        module_dir = self.root / "Declared"
        write_plugin(module_dir, "a_speaker.py", name="A", init_result=False, load_order=("c_speaker.py",))
        b_plugin = write_plugin(module_dir, "b_speaker.py", name="B")
        write_plugin(module_dir, "c_speaker.py", name="C")

        self.assertTrue(self.loader.load("Declared"))

        self.assertEqual(self.loader.get_speaker().descriptor.name, "C")
        self.assertFalse(b_plugin.with_suffix(".constructed").exists())
        self.assertEqual(self.kinds(), [FailureKind.INITIALIZATION])

    def test_file_without_factories_is_not_left_imported(self):
        """Test that a module rejected for its exports is removed from sys.modules."""
        module_dir = self.root / "NoExport"
        module_dir.mkdir(parents=True)
        (module_dir / "a_helpers.py").write_text("VALUE = 1\n", encoding="utf-8")
        write_plugin(module_dir, "b_speaker.py")

        self.assertTrue(self.loader.load("NoExport"))

        self.assertEqual(self.kinds(), [FailureKind.MODULE_LOAD])
        self.assertEqual([name for name in sys.modules if name.endswith("NoExport_a_helpers")], [])

    def test_candidates_are_found_recursively(self):
        """Test that nested directories are scanned."""
        write_plugin(self.root / "Nested" / "lib" / "deep", "speaker.py", name="Deep")

        self.assertTrue(self.loader.load("Nested"))
        self.assertEqual(self.loader.get_speaker().descriptor.name, "Deep")

    def test_module_name_must_be_a_single_segment(self):
        """Test that path traversal in module names is refused."""
        for name in ("", "..", "../outside", "a/b"):
            with self.subTest(name=name):
                self.assertFalse(self.loader.load(name))
                self.assertEqual(self.kinds(), [FailureKind.MODULE_LOAD])
        self.assertFalse((self.root.parent / "outside").exists())

    def test_unload_tears_down_and_is_idempotent(self):
        """Test unload with and without an active speaker."""
        self.loader.unload()

        write_plugin(self.root / "Fake", "fake_speaker.py")
        self.loader.load("Fake")
        speaker = self.loader.get_speaker()

        self.loader.unload()
        self.assertIsNone(self.loader.get_speaker())
        self.assertIs(speaker.state, SpeakerState.TORN_DOWN)
        self.assertEqual(speaker.synthesize_bytes("Hello"), b"")

        self.loader.unload()

    def test_load_any_uses_first_module_that_works(self):
        """Test the scan across all module directories."""
        write_plugin(self.root / "A_Broken", "broken.py", name="Broken", init_result=False)
        write_plugin(self.root / "B_Works", "works.py", name="Works")

        self.assertEqual(self.loader.available_modules(), ["A_Broken", "B_Works"])
        self.assertTrue(self.loader.load_any())
        self.assertEqual(self.loader.get_speaker().descriptor.name, "Works")
        self.assertEqual(self.kinds(), [FailureKind.INITIALIZATION])

    def test_load_any_without_root_creates_it(self):
        """Test that a missing modules root is created and nothing loads."""
        self.assertFalse(self.loader.load_any())
        self.assertTrue(self.root.is_dir())
        self.assertEqual(self.loader.available_modules(), [])


class StubSpeaker:
    """Minimal in-process speaker for the built-in registry tests."""

    def __init__(self, *, platforms=frozenset({Platform.LINUX}), initialize=True, error=None):
        self.descriptor = ModuleDescriptor(
            name="stub",
            description="stub speaker",
            version="1.0.0.0",
            authors="tests",
            supported_platforms=platforms,
        )
        self.initialize_calls = 0
        self._initialize_result = initialize
        self._error = error
        self._lifecycle = SpeakerLifecycle()

    @property
    def state(self):
        return self._lifecycle.state

    @property
    def is_ready(self):
        return self._lifecycle.is_ready

    @property
    def supported_languages(self):
        return self.descriptor.supported_languages

    def initialize(self):
        self.initialize_calls += 1
        if self._error is not None:
            raise self._error
        return self._initialize_result and self._lifecycle.mark_ready()

    def synthesize_bytes(self, text):
        return b""

    def synthesize_to_file(self, text, directory, file_name):
        return False

    def synthesize_to_device(self, text):
        return False

    def change_language(self, locale):
        return False

    def set_volume(self, volume):
        return False

    def set_gender(self, gender):
        return False

    def set_speaking_rate(self, rate):
        return False

    def set_pitch(self, pitch):
        return unsupported("pitch")

    def set_age(self, age):
        return unsupported("age")

    def set_accent(self, accent):
        return unsupported("accent")

    def teardown(self):
        return self._lifecycle.mark_torn_down()


class UnreadableDescriptorSpeaker(StubSpeaker):
    """Stub whose descriptor cannot be read."""

    @property
    def descriptor(self):
        raise RuntimeError("descriptor unavailable")

    @descriptor.setter
    def descriptor(self, value):
        pass


class TestSpeakerLoaderBuiltins(unittest.TestCase):
    """Test cases for SpeakerLoader.load_builtin."""

    def setUp(self):
        """Set up test fixtures."""
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.root = Path(self._tmp.name)

    def test_stub_satisfies_the_speaker_contract(self):
        """Test that structural typing accepts a complete adapter."""
        self.assertIsInstance(StubSpeaker(), Speaker)
        self.assertNotIsInstance(object(), Speaker)

    def test_unknown_builtin(self):
        """Test that unknown names fail with a module load failure."""
        loader = SpeakerLoader(self.root, platform=Platform.LINUX)

        self.assertFalse(loader.load_builtin("sapi"))
        self.assertEqual(loader.failures[0].kind, FailureKind.MODULE_LOAD)

    def test_builtin_runs_through_the_same_pipeline(self):
        """Test platform filtering and initialization for built-in factories."""
        windows_only = StubSpeaker(platforms=frozenset({Platform.WINDOWS}))
        working = StubSpeaker()
        loader = SpeakerLoader(
            self.root,
            platform=Platform.LINUX,
            builtin_modules={"engine": lambda: [lambda: windows_only, lambda: working]},
        )

        self.assertTrue(loader.load_builtin("engine"))

        self.assertIs(loader.get_speaker(), working)
        self.assertEqual(windows_only.initialize_calls, 0)
        self.assertEqual(working.initialize_calls, 1)
        self.assertEqual([f.kind for f in loader.failures], [FailureKind.PLATFORM_UNSUPPORTED])

    def test_speaker_with_invalid_descriptor_is_skipped(self):
        """Test that a wrong or unreadable descriptor is an instantiation failure."""
        odd = StubSpeaker()
        odd.descriptor = object()
        unreadable = UnreadableDescriptorSpeaker()
        working = StubSpeaker()
        loader = SpeakerLoader(
            self.root,
            platform=Platform.LINUX,
            builtin_modules={
                "odd": lambda: [lambda: odd],
                "mixed": lambda: [lambda: odd, lambda: unreadable, lambda: working],
            },
        )

        self.assertFalse(loader.load_builtin("odd"))
        self.assertEqual([f.kind for f in loader.failures], [FailureKind.TYPE_INSTANTIATION])

        self.assertTrue(loader.load_builtin("mixed"))
        self.assertIs(loader.get_speaker(), working)
        self.assertEqual([f.kind for f in loader.failures], [FailureKind.TYPE_INSTANTIATION] * 2)
        self.assertIn("descriptor unavailable", loader.failures[1].message)
        self.assertEqual(odd.initialize_calls, 0)
        self.assertEqual(unreadable.initialize_calls, 0)

    def test_builtin_import_failure(self):
        """Test that a built-in whose dependency is missing fails cleanly."""

        def missing():
            raise ImportError("No module named 'pyttsx3'")

        loader = SpeakerLoader(self.root, platform=Platform.LINUX, builtin_modules={"pyttsx3": missing})

        self.assertFalse(loader.load_builtin("pyttsx3"))
        self.assertIn("pyttsx3", loader.failures[0].message)

    def test_initialize_exception_is_contained(self):
        """Test that an initialize raising is recorded as an initialization failure."""
        speaker = StubSpeaker(error=RuntimeError("engine died"))
        loader = SpeakerLoader(
            self.root,
            platform=Platform.LINUX,
            builtin_modules={"engine": lambda: [lambda: speaker]},
        )

        self.assertFalse(loader.load_builtin("engine"))
        self.assertEqual(loader.failures[0].kind, FailureKind.INITIALIZATION)
        self.assertIsNone(loader.get_speaker())


if __name__ == "__main__":
    unittest.main()
