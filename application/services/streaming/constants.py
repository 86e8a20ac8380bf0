"""Constants for the streaming pipeline."""

# System prompt prepended to every generation; formatted with the model config name
SYSTEM_PROMPT_TEMPLATE = "You are {name}."

# Bound on waiting for in-flight generations to wind down at shutdown
SHUTDOWN_TIMEOUT = 5.0

# Error kinds that are not ProviderError subclasses
INTERNAL_ERROR_KIND = "internal"
CONFIG_ERROR_KIND = "config"
