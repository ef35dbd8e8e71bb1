"""
TikTok slideshow providers.

Modules in this package are imported at startup. Each SlideshowProvider
subclass sets PROVIDER_NAME (used for the {PROVIDER_NAME}_PRIORITY override)
and may set DEFAULT_PRIORITY.
"""
