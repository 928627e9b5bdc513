# =============================================================================
# POLYMARKET RESEARCH DESK - TEST SUITE
# =============================================================================
#
# Structure:
#   tests/
#     unit/           - Pure logic (validator, selection, priorities, stores)
#     integration/    - Engine wired over a temporary state directory
#
# Usage:
#   pytest tests/                    # Everything
#   python run_tests.py --quick      # Smoke test
#
# =============================================================================
