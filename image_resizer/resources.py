"""User-visible strings for the AI super-resolution feature."""

AI_MODEL_NOT_CHECKED = "AI model availability hasn't been checked yet."
AI_MODEL_CHECKING = "Checking AI model availability..."
AI_MODEL_NOT_SUPPORTED = "AI super resolution isn't supported on this device."
AI_MODEL_DISABLED_BY_USER = "AI features are turned off in system settings."
AI_MODEL_NOT_AVAILABLE = "The AI model needs to be downloaded before first use."
AI_MODEL_DOWNLOADING = "Downloading the AI model..."
AI_MODEL_DOWNLOAD_FAILED = "The AI model couldn't be downloaded. Try again later."
AI_MODEL_DOWNLOAD_CANCELLED = "The AI model download was cancelled."
AI_ENGINE_DEGRADED = "The AI model is installed but couldn't be started."

AI_CURRENT_LABEL = "Current"
AI_NEW_LABEL = "New"
AI_SCALE_LABEL = "Scale"
AI_UNKNOWN_SIZE = "Unknown size"
