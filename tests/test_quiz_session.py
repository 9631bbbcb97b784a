from __future__ import annotations

import sys
import threading

import pytest

from level_core.engine import QuizSession
from level_core.errors import RoleError, SessionStateError, TEACHER_CANNOT_TEST
from level_core.notify import QueuedNotifier

from tests.conftest import answer_key


def test_ten_answers_complete_the_session():
    completed = []
    sess = QuizSession(on_complete=completed.append)
    assert sess.start("general")
    for idx, pick in enumerate(answer_key("general", 8)):
        assert sess.status == "in_progress"
        assert len(sess.answers) == sess.current_question == idx
        sess.submit_answer(pick)

    assert sess.status == "completed"
    assert len(sess.answers) == 10
    assert sess.correct_count() == 8
    assert len(completed) == 1, "completion hook fires exactly once"
    result = completed[0]
    assert (result.level, result.description, result.score) == ("B2", "Upper Intermediate", 8)
    assert result.answers == sess.answers


def test_eleventh_answer_is_rejected_without_mutation():
    notifier = QueuedNotifier()
    sess = QuizSession(notifier=notifier)
    sess.start("ielts")
    for pick in answer_key("ielts", 10):
        sess.submit_answer(pick)
    before = (sess.status, sess.current_question, list(sess.answers), sess.result)

    assert sess.submit_answer(0) is None
    assert (sess.status, sess.current_question, list(sess.answers), sess.result) == before
    assert notifier.drain(), "rejection should notify the user"

    with pytest.raises(SessionStateError):
        sess.submit_answer(0, strict=True)


def test_teacher_cannot_start(teacher):
    notifier = QueuedNotifier()
    sess = QuizSession(user=teacher, notifier=notifier)
    assert sess.start("general") is False
    assert sess.status == "not_started"
    assert sess.current() is None
    assert notifier.drain() == [TEACHER_CANNOT_TEST]

    with pytest.raises(RoleError):
        sess.start("toefl", strict=True)
    assert sess.status == "not_started"


def test_answers_record_correctness_section_and_variant():
    sess = QuizSession()
    sess.start("toefl")
    first = sess.current()
    ans = sess.submit_answer(first.correct)
    assert ans.correct is True
    assert ans.question == 0
    assert ans.section == "Structure"
    assert ans.variant == "toefl"

    second = sess.current()
    wrong = sess.submit_answer((second.correct + 1) % 4)
    assert wrong.correct is False


def test_out_of_range_selection_is_rejected():
    notifier = QueuedNotifier()
    sess = QuizSession(notifier=notifier)
    sess.start("general")
    assert sess.submit_answer(7) is None
    assert sess.submit_answer("x") is None
    assert sess.current_question == 0 and sess.answers == []
    assert len(notifier.drain()) == 2


def test_restart_discards_in_progress_run():
    completed = []
    sess = QuizSession(on_complete=completed.append)
    sess.start("general")
    for pick in answer_key("general", 3)[:4]:
        sess.submit_answer(pick)

    sess.start("ielts")
    assert sess.variant == "ielts"
    assert sess.current_question == 0 and sess.answers == []
    assert completed == [], "abandoned runs are never scored"


def test_unknown_variant_runs_general_questions():
    sess = QuizSession()
    sess.start("gre")
    assert sess.variant == "general"
    assert sess.current().section == "A1"


def test_submit_before_start_is_rejected():
    sess = QuizSession()
    assert sess.submit_answer(0) is None
    assert sess.status == "not_started"


def test_completed_result_ids_are_unique():
    ids = set()
    for _ in range(5):
        sess = QuizSession()
        sess.start("general")
        for pick in answer_key("general", 5):
            sess.submit_answer(pick)
        ids.add(sess.result.id)
    assert len(ids) == 5


def test_parallel_final_answers_complete_once():
    completed = []
    sess = QuizSession(on_complete=completed.append)
    sess.start("general")
    for pick in answer_key("general", 9)[:9]:
        sess.submit_answer(pick)

    old_interval = sys.getswitchinterval()
    sys.setswitchinterval(1e-6)
    try:
        barrier = threading.Barrier(4)
        accepted = []

        def worker():
            barrier.wait()
            accepted.append(sess.submit_answer(0))

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)
    finally:
        sys.setswitchinterval(old_interval)

    assert len(sess.answers) == 10
    assert sess.status == "completed"
    assert len([a for a in accepted if a is not None]) == 1
    assert len(completed) == 1
