"""
droidpanel: a control panel for the Android build and device workflow.

External tools (Gradle, adb, the emulator, zipalign, apksigner) run as
cancellable tasks with their output streamed live into a bounded log.
"""

__version__ = "0.1.0"
