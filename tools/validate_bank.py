from __future__ import annotations
from collections import Counter
from level_core.question_bank import VARIANTS, load_bank, validate_bank

def main() -> int:
    bank = load_bank()
    for v in VARIANTS:
        questions = bank.get(v, ())
        sections = Counter(q.section for q in questions)
        answer_keys = Counter("ABCD"[q.correct] for q in questions if 0 <= q.correct < 4)
        print(f"{v}: {len(questions)} questions")
        print("  sections: " + ", ".join(f"{s}={n}" for s, n in sections.items()))
        print("  answer keys: " + ", ".join(f"{k}={answer_keys.get(k, 0)}" for k in "ABCD"))

    problems = validate_bank(bank)
    if problems:
        print("\nProblems:")
        for p in problems: print(f" - {p}")
        return 2
    print("\n✓ Bank is valid")
    return 0

if __name__ == "__main__":
    raise SystemExit(main())
