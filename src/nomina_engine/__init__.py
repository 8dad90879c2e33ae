"""Colombian payroll period lifecycle and liquidation engine."""

__version__ = "0.1.0"
