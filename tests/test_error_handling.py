from __future__ import annotations

import unittest
from urllib.error import URLError

from image_resizer import resources
from image_resizer.error_handling import (
    FeatureFailure,
    UserFacingError,
    as_user_facing_error,
    feature_error,
)


class TestErrorHandling(unittest.TestCase):
    def test_as_user_facing_error_wraps_missing_file(self) -> None:
        error = as_user_facing_error(FileNotFoundError("missing"))
        self.assertEqual(error.title, "File not found")
        self.assertEqual(error.error_code, "IO-001")
        self.assertGreater(len(error.suggested_fixes), 0)

    def test_network_failures_share_a_code(self) -> None:
        for exc in (URLError("down"), TimeoutError("slow"), ConnectionResetError("reset")):
            with self.subTest(exc=type(exc).__name__):
                self.assertEqual(as_user_facing_error(exc).error_code, "NET-001")

    def test_user_facing_error_passes_through(self) -> None:
        original = UserFacingError(title="t", summary="s", error_code="MODEL-001")
        self.assertIs(as_user_facing_error(original), original)

    def test_unknown_errors_get_generic_code(self) -> None:
        error = as_user_facing_error(RuntimeError("boom"))
        self.assertEqual(error.error_code, "APP-001")
        self.assertTrue(error.can_retry)

    def test_user_facing_error_string_includes_code(self) -> None:
        error = UserFacingError(
            title="Example",
            summary="Something failed",
            suggested_fixes=("Fix it",),
            error_code="EX-001",
        )
        self.assertIn("EX-001", str(error))


class TestFeatureErrors(unittest.TestCase):
    def test_every_failure_kind_has_an_error(self) -> None:
        codes = set()
        for kind in FeatureFailure:
            error = feature_error(kind)
            self.assertEqual(error.error_code, kind.value)
            self.assertTrue(error.summary)
            self.assertGreater(len(error.suggested_fixes), 0)
            codes.add(error.error_code)
        self.assertEqual(len(codes), len(FeatureFailure))

    def test_summaries_reuse_status_messages(self) -> None:
        self.assertEqual(
            feature_error(FeatureFailure.HARDWARE_INELIGIBLE).summary,
            resources.AI_MODEL_NOT_SUPPORTED,
        )
        self.assertEqual(
            feature_error(FeatureFailure.DOWNLOAD_FAILED).summary,
            resources.AI_MODEL_DOWNLOAD_FAILED,
        )
        self.assertFalse(feature_error(FeatureFailure.PROVIDER_DISABLED).can_retry)


if __name__ == "__main__":
    unittest.main()
