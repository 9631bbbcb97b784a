from __future__ import annotations


class LevelTestError(Exception):
    """Base class for level test failures a caller may want to handle."""


class RoleError(LevelTestError):
    pass


class SessionStateError(LevelTestError):
    pass


class UnknownActionError(LevelTestError):
    pass


class ActionArgumentError(LevelTestError):
    """Arguments do not fit the dispatched action's signature."""


TEACHER_CANNOT_TEST = "Teachers can only view student results, not take tests."
QUIZ_NOT_IN_PROGRESS = "This test is already finished. Start a new test to answer again."
