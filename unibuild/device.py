"""Install-and-launch helpers for Android devices and emulators."""
from __future__ import annotations

from pathlib import Path
from typing import Callable, List, Mapping
import shutil
import time

from core.command_runner import CommandError, CommandResult, CommandRunner, ProcessHandle
from core.console import Console

from .errors import DeviceToolingError

PACKAGE_ENV = "ANDROID_PACKAGE_NAME"


class DeviceTooling:
    """Wraps ``adb``, ``bundletool`` and ``emulator`` behind one object."""

    def __init__(
        self,
        runner: CommandRunner,
        console: Console,
        *,
        adb: str = "adb",
        bundletool: str = "bundletool",
        emulator: str = "emulator",
        boot_timeout: float = 120.0,
        poll_interval: float = 5.0,
        sleep: Callable[[float], None] = time.sleep,
        which: Callable[[str], str | None] = shutil.which,
    ) -> None:
        self._runner = runner
        self._console = console
        self.adb = adb
        self.bundletool = bundletool
        self.emulator = emulator
        self.boot_timeout = boot_timeout
        self.poll_interval = poll_interval
        self._sleep = sleep
        self._which = which

    def _run(self, command: List[str], *, note: str) -> str:
        try:
            result = self._runner.run(command, check=True, note=note)
        except CommandError as exc:
            raise DeviceToolingError(f"{note} failed with exit code {exc.result.returncode}") from exc
        except OSError as exc:
            raise DeviceToolingError(f"{note} could not be started: {exc}") from exc
        return result.stdout

    def _try(self, command: List[str], *, note: str) -> CommandResult:
        try:
            return self._runner.run(command, check=False, note=note)
        except OSError as exc:
            raise DeviceToolingError(f"{note} could not be started: {exc}") from exc

    def check_tools(self) -> None:
        if self._which(self.adb) is None:
            raise DeviceToolingError("adb not found. Please install Android SDK platform-tools.")
        if self._which(self.bundletool) is None:
            raise DeviceToolingError("bundletool not found. Install with: brew install bundletool")

    def connected_devices(self) -> List[str]:
        output = self._run([self.adb, "devices"], note="adb devices")
        devices: List[str] = []
        for line in output.splitlines():
            parts = line.split()
            if len(parts) == 2 and parts[1] == "device":
                devices.append(parts[0])
        return devices

    def boot_completed(self) -> bool:
        result = self._try([self.adb, "shell", "getprop", "sys.boot_completed"], note="adb getprop")
        return result.returncode == 0 and result.stdout.strip() == "1"

    def available_emulators(self) -> List[str]:
        try:
            result = self._runner.run([self.emulator, "-list-avds"], check=False, note="emulator -list-avds")
        except OSError as exc:
            self._console.warning(f"Could not list emulators: {exc}")
            return []
        if result.returncode != 0:
            return []
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def ensure_device(self) -> ProcessHandle | None:
        """Return once a device is attached, booting an emulator when none is."""
        if self.connected_devices():
            return None

        self._console.warning("No Android device/emulator connected. Attempting to launch an emulator...")
        avds = self.available_emulators()
        if not avds:
            raise DeviceToolingError(
                "No emulators found. Please create one in Android Studio or connect a device."
            )
        name = avds[0]
        self._console.info(f"Launching emulator {name} (this may take a minute)...")
        try:
            handle = self._runner.spawn([self.emulator, "-avd", name, "-no-snapshot-load"], note="Emulator")
        except OSError as exc:
            raise DeviceToolingError(f"Emulator {name} could not be started: {exc}") from exc

        waited = 0.0
        while waited < self.boot_timeout:
            try:
                booted = self.boot_completed()
            except DeviceToolingError:
                handle.terminate()
                raise
            if booted:
                self._console.info("Emulator booted successfully")
                return handle
            self._sleep(self.poll_interval)
            waited += self.poll_interval
            self._console.info(f"Still waiting... ({waited:g}/{self.boot_timeout:g} seconds)")

        handle.terminate()
        raise DeviceToolingError(f"Emulator boot timed out after {self.boot_timeout:g} seconds")

    def uninstall(self, package_id: str) -> None:
        self._console.info("Uninstalling existing app (if any)...")
        self._try([self.adb, "uninstall", package_id], note="adb uninstall")
        self._try([self.adb, "shell", "pm", "clear", package_id], note="adb pm clear")

    def convert_bundle_to_installable(self, bundle: Path, installable: Path) -> Path:
        self._console.info("Converting AAB to APKs...")
        self._run(
            [
                self.bundletool,
                "build-apks",
                f"--bundle={bundle}",
                f"--output={installable}",
                "--mode=universal",
                "--overwrite",
            ],
            note="bundletool build-apks",
        )
        return installable

    def install(self, installable: Path) -> None:
        self._console.info("Installing APKs on device...")
        self._run([self.bundletool, "install-apks", f"--apks={installable}"], note="bundletool install-apks")

    def launch(self, package_id: str) -> None:
        self._console.info("Launching app...")
        self._run(
            [self.adb, "shell", "monkey", "-p", package_id, "-c", "android.intent.category.LAUNCHER", "1"],
            note="adb monkey",
        )

    def run_bundle(self, bundle: Path, installable: Path, package_id: str) -> None:
        self._console.header("Installing and Running on Android Device/Emulator")
        if not bundle.is_file():
            raise DeviceToolingError(f"AAB file not found at {bundle}")
        if not package_id:
            raise DeviceToolingError(f"{PACKAGE_ENV} is not set")
        self.check_tools()
        self.ensure_device()
        self.uninstall(package_id)
        try:
            self.convert_bundle_to_installable(bundle, installable)
            self.install(installable)
        finally:
            installable.unlink(missing_ok=True)
        self.launch(package_id)
        self._console.info("App launched! Check the device/emulator.")
        self._console.info("To view logs in real-time: adb logcat -s Unity")


def package_id_from(environment: Mapping[str, str]) -> str:
    return environment.get(PACKAGE_ENV, "")


__all__ = ["DeviceTooling", "PACKAGE_ENV", "package_id_from"]
