"""
The ANALYSIS layer answers queries on model data: mesh interpolation,
harmonic drive evaluation and the result types of a calculation.
"""
