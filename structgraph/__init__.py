"""structgraph: dependency graphs of Go structs."""

__version__ = "0.1.0"
