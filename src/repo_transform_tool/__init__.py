"""repolish: phased, approval-gated repository professionalization."""

__version__ = "0.1.0"
