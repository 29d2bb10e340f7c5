"""Super learner win/tie probability modeling over game states."""

__version__ = "0.1.0"
