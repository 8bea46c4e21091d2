"""proterm — a terminal shell built on managed pseudo-terminal sessions."""

__version__ = "0.1.0"
