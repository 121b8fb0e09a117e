from __future__ import annotations

from hirelogic.log import configure_logging
from hirelogic.pipeline import advise_excel
from hirelogic.state import ResolvedRequest, SkillRequirement

# --- Pool configuration ---
INPUT_PATH = "data/candidates.xlsx"
SHEET_NAME = "Pool"

# Policy & diagnosis knobs
POLICY_PATH = "policies/default.yaml"  # adjust if needed
SAVE_REPORT = False

REQUEST = ResolvedRequest(
    required_seniority_level="staff",
    required_skills=(SkillRequirement("skill_kubernetes", "expert"),),
    required_max_start_time="two_weeks",
    required_timezone=("Eastern", "Central"),
    max_budget=100000,
    team_focus="scaling",
)


def main() -> int:
    configure_logging("INFO")

    res = advise_excel(
        input_path=INPUT_PATH,
        sheet_name=SHEET_NAME,
        request=REQUEST,
        policy_path=POLICY_PATH,
        save=SAVE_REPORT,
    )

    print(f"[Diagnosis] matches={res.total_count} oracle_calls={res.diagnosis.oracle_call_count}")
    for rid in res.context.trace.fired_rule_ids:
        print(f"  fired: {rid}")

    if not res.sparse:
        print("[Diagnosis] Enough candidates; nothing to relax.")
        return 0

    print("[Diagnosis] Minimal conflict sets:")
    for text in res.explanations:
        print(f"  {text}")
    print("[Diagnosis] Suggestions (best first):")
    for s in res.suggestions:
        print(f"  {s.rationale} -> {s.resulting_matches} match(es)")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
