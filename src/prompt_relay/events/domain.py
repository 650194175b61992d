"""Names of the outbound events published toward the UI shell."""

from __future__ import annotations

TERMINAL_STATUS = "terminalStatus"
FILE_SEARCH_RESULTS = "fileSearchResults"
COMMIT_SEARCH_RESULTS = "commitSearchResults"
PROBLEMS_RESULTS = "problemsResults"
DIRECT_MODE_RESPONSE = "directModeResponse"
UPDATE_PROCESS_STATE = "updateProcessState"
CUSTOM_COMMANDS_UPDATED = "customCommandsUpdated"
IMAGE_FILES_SELECTED = "imageFilesSelected"
DROPPED_PATHS_RESOLVED = "droppedPathsResolved"
DROPPED_IMAGES_RESOLVED = "droppedImagesResolved"
SET_DIRECT_MODE = "setDirectMode"
FOCUS_INPUT = "focusInput"
SHOW_WARNING = "showWarning"

OUTBOUND_EVENTS: frozenset[str] = frozenset(
    {
        TERMINAL_STATUS,
        FILE_SEARCH_RESULTS,
        COMMIT_SEARCH_RESULTS,
        PROBLEMS_RESULTS,
        DIRECT_MODE_RESPONSE,
        UPDATE_PROCESS_STATE,
        CUSTOM_COMMANDS_UPDATED,
        IMAGE_FILES_SELECTED,
        DROPPED_PATHS_RESOLVED,
        DROPPED_IMAGES_RESOLVED,
        SET_DIRECT_MODE,
        FOCUS_INPUT,
        SHOW_WARNING,
    }
)
