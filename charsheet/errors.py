"""Exception hierarchy for the character sheet core.

Only input validation and source acquisition surface to callers; extraction
and normalization degrade to defaults instead of raising.
"""


class CharSheetError(Exception):
    """Base class for all charsheet errors."""
    pass


class InvalidInput(CharSheetError):
    """Wrong file type, oversized upload or unparsable character URL."""
    pass


class SourceFetchFailure(CharSheetError):
    """Reading a file, decoding a PDF or fetching a remote page failed."""
    pass


class SerializationFailure(CharSheetError):
    """Persisting or rehydrating the current sheet failed."""
    pass


class EditWithoutLoadedSheet(CharSheetError):
    """An edit session was requested while no sheet is loaded."""
    pass


class NoActiveEdit(CharSheetError):
    """commit_edit / cancel_edit was called without an edit session."""
    pass
