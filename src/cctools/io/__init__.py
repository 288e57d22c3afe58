"""
Result sinks for exporting calculation results (CSV, HDF5, VTU).
"""
