r"""
Unit conventions for hit coordinates and fit parameters.

All lengths are in centimeters and all times in nanoseconds, so speeds are in
``cm/ns`` and the speed of light is :math:`c \approx 29.98\ \mathrm{cm/ns}`.
Expressions such as ``2 * units.time`` or ``100 * units.length`` read as
"two nanoseconds" and "one meter".
"""

time: float = 1.0
length: float = 1.0
speed_of_light: float = 29.9792458 * length / time
