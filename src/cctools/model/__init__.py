"""
The MODEL layer contains the data structures of a magnet model.
It deals with geometry, field samples, harmonic drives and the configuration
document they are built from.
"""
