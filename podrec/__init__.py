"""podrec - crash-safe microphone recorder."""
