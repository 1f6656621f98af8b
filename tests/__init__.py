# =============================================================================
# POLYMARKET LADDER TRADER - TEST SUITE
# =============================================================================
#
# Struktur:
#   tests/
#     mock_data.py    - London ladder fixture shared by all tests
#     unit/           - parser, model, snapshot, candidates, forecasts,
#                       collector, config, scheduler
#     integration/    - position lifecycle, settlement, full cycle
#
# Usage:
#   pytest                          # Alle Tests
#   pytest tests/unit               # Nur Unit Tests
#   pytest tests/integration        # Nur Integration Tests
#
# =============================================================================
