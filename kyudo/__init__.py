"""
Kyudo Form Analyzer.

Derives joint angles from recorded kyudo video, scores the archer's form
against kyudo biomechanical criteria and replays the captured skeleton
overlay in sync with the source video.

Modules are imported on-demand to avoid loading heavy dependencies.
"""

__version__ = "0.1.0"
