"""al: link.d and shell.d stores."""

__version__ = "0.3.0"
