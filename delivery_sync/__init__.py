# ==============================================
# Delivery Sync Core
# ==============================================
#
# Package Structure (4 Topics + Orchestrator):
#
# delivery_sync/
# ├── normalization/    # Topic 1: Vocabulary, field cleaners, records, grouping
# ├── analysis/         # Topic 2: Profile & classify sheet columns
# ├── offline/          # Topic 3: Durable offline change queue
# ├── persistence/      # Topic 4: Snapshot + mapping cache across restarts
# ├── storage/          # External collaborators (Sheets, MySQL, MongoDB)
# ├── connectivity.py   # Online/offline signal
# ├── config.py         # Configuration management
# ├── errors.py         # Error taxonomy
# ├── logging_setup.py  # Logging initialization
# ├── sync_orchestrator.py  # Final orchestrator class
# └── cli.py            # Command line entry point
#
# ==============================================

__version__ = "0.1.0"
