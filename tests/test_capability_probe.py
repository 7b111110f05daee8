import unittest
from unittest import mock

from image_resizer.capability_probe import (
    CapabilityProbe,
    Eligibility,
    detect_ram_gb,
    normalize_architecture,
)


class TestCapabilityProbe(unittest.TestCase):
    def test_allowed_architecture_is_supported(self) -> None:
        probe = CapabilityProbe(allowed_architectures=("arm64",), machine=lambda: "ARM64")
        self.assertEqual(probe.check_eligibility(), Eligibility.SUPPORTED)

    def test_aliases_are_normalized(self) -> None:
        self.assertEqual(normalize_architecture("aarch64"), "arm64")
        self.assertEqual(normalize_architecture("AMD64"), "x86_64")
        probe = CapabilityProbe(allowed_architectures=("aarch64",), machine=lambda: "arm64")
        self.assertEqual(probe.check_eligibility(), Eligibility.SUPPORTED)

    def test_other_architecture_is_unsupported(self) -> None:
        probe = CapabilityProbe(allowed_architectures=("arm64",), machine=lambda: "x86_64")
        self.assertEqual(probe.check_eligibility(), Eligibility.UNSUPPORTED)

    def test_blank_architecture_is_unsupported(self) -> None:
        probe = CapabilityProbe(allowed_architectures=("arm64",), machine=lambda: "")
        self.assertEqual(probe.check_eligibility(), Eligibility.UNSUPPORTED)

    def test_inspection_failure_maps_to_unsupported(self) -> None:
        def _broken() -> str:
            raise OSError("uname failed")

        probe = CapabilityProbe(machine=_broken)
        self.assertEqual(probe.check_eligibility(), Eligibility.UNSUPPORTED)

    def test_minimum_ram_is_enforced(self) -> None:
        low = CapabilityProbe(
            allowed_architectures=("arm64",),
            minimum_ram_gb=16,
            machine=lambda: "arm64",
            ram_detector=lambda: 8,
        )
        high = CapabilityProbe(
            allowed_architectures=("arm64",),
            minimum_ram_gb=16,
            machine=lambda: "arm64",
            ram_detector=lambda: 32,
        )
        self.assertEqual(low.check_eligibility(), Eligibility.UNSUPPORTED)
        self.assertEqual(high.check_eligibility(), Eligibility.SUPPORTED)

    def test_ram_detection_failure_is_unsupported(self) -> None:
        def _broken() -> int:
            raise RuntimeError("no sysconf")

        probe = CapabilityProbe(
            allowed_architectures=("arm64",),
            minimum_ram_gb=4,
            machine=lambda: "arm64",
            ram_detector=_broken,
        )
        self.assertEqual(probe.check_eligibility(), Eligibility.UNSUPPORTED)

    def test_detect_ram_rounds_up_to_whole_gigabytes(self) -> None:
        memory = mock.Mock(total=int(23.5 * 1024**3))
        with mock.patch(
            "image_resizer.capability_probe.psutil.virtual_memory", return_value=memory
        ):
            self.assertEqual(detect_ram_gb(), 24)


if __name__ == "__main__":
    unittest.main()
