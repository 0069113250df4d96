# Scoreboard: film-score composition task board backed by a remote record store
#
# Components:
#   schema.py     - Data model (Task, Column, BoardConfig, priority/type/column enums)
#   errors.py     - Error taxonomy shared by gateways and the board
#   fields.py     - Local <-> remote field translation
#   gateway.py    - Record gateway over the spreadsheet-database HTTP API
#   media.py      - Screenshot upload + record attachment
#   screenshot.py - Client for the video screenshot capture service
#   board.py      - In-memory column state with optimistic updates
#   events.py     - Notification bridge (banner, toasts, warnings)
#   config.py     - Settings and persisted board configuration
