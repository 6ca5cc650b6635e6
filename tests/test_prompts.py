from __future__ import annotations

from io import StringIO
import unittest

from unibuild.prompts import (
    InteractivePolicy,
    NonInteractivePolicy,
    PreprocessingChoice,
    select_policy,
)
from unibuild.request import Platform
from unibuild.staleness import StalenessMarker


class _Terminal(StringIO):
    def isatty(self) -> bool:
        return True


MARKER = StalenessMarker(Platform.IOS, "dev", "2025-01-01 10:00:00")


class InteractivePolicyTests(unittest.TestCase):
    def _policy(self, answers: str) -> tuple[InteractivePolicy, StringIO]:
        stdout = StringIO()
        return InteractivePolicy(stdin=StringIO(answers), stdout=stdout), stdout

    def test_first_build_defaults_to_running(self) -> None:
        for answer in ("\n", "y\n", "Yes\n", ""):
            with self.subTest(answer=answer):
                policy, stdout = self._policy(answer)
                self.assertEqual(policy.choose_preprocessing(Platform.IOS, "dev", None), PreprocessingChoice.RUN)
                self.assertIn("first build for iOS/dev", stdout.getvalue())

    def test_first_build_can_be_declined(self) -> None:
        policy, _ = self._policy("N\n")
        self.assertEqual(policy.choose_preprocessing(Platform.IOS, "dev", None), PreprocessingChoice.SKIP)

    def test_existing_marker_choices(self) -> None:
        cases = {
            "y\n": PreprocessingChoice.RUN,
            "n\n": PreprocessingChoice.SKIP,
            "s\n": PreprocessingChoice.SKIP_SESSION,
            "\n": PreprocessingChoice.SKIP,
            "whatever\n": PreprocessingChoice.SKIP,
        }
        for answer, expected in cases.items():
            with self.subTest(answer=answer):
                policy, stdout = self._policy(answer)
                self.assertEqual(policy.choose_preprocessing(Platform.IOS, "dev", MARKER), expected)
                self.assertIn("Last run: 2025-01-01 10:00:00", stdout.getvalue())

    def test_continue_after_failure_defaults_to_abort(self) -> None:
        policy, _ = self._policy("\n")
        self.assertFalse(policy.continue_after_failure(Platform.ANDROID, "dev"))
        policy, _ = self._policy("y\n")
        self.assertTrue(policy.continue_after_failure(Platform.ANDROID, "dev"))


class NonInteractivePolicyTests(unittest.TestCase):
    def test_fixed_answers(self) -> None:
        policy = NonInteractivePolicy()
        self.assertFalse(policy.interactive)
        self.assertEqual(policy.choose_preprocessing(Platform.IOS, "dev", None), PreprocessingChoice.SKIP)
        self.assertFalse(policy.continue_after_failure(Platform.IOS, "dev"))


class SelectPolicyTests(unittest.TestCase):
    def test_terminal_selects_interactive(self) -> None:
        policy = select_policy(stdin=_Terminal(), environment={})
        self.assertIsInstance(policy, InteractivePolicy)

    def test_pipe_selects_non_interactive(self) -> None:
        policy = select_policy(stdin=StringIO(), environment={})
        self.assertIsInstance(policy, NonInteractivePolicy)

    def test_ci_and_flag_force_non_interactive(self) -> None:
        self.assertIsInstance(select_policy(stdin=_Terminal(), environment={"CI": "true"}), NonInteractivePolicy)
        self.assertIsInstance(
            select_policy(force_non_interactive=True, stdin=_Terminal(), environment={}),
            NonInteractivePolicy,
        )


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
