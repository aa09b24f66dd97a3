"""SevaSync - seva rotation with multi-device sync"""

__version__ = "1.0.0"
