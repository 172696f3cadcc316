class MemragError(Exception):
    """Base class for agent errors"""


class ConfigurationError(MemragError):
    """Missing credentials or an unusable knowledge base; fatal at startup"""


class GenerationError(MemragError):
    """The text-generation collaborator failed to produce a completion"""


class StructuredOutputError(MemragError):
    """Model output could not be parsed into the expected JSON structure"""
