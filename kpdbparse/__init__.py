"""Reading MSF/PDB symbol files: public symbols, CodeView types and member offsets."""

__version__ = "0.1.0"