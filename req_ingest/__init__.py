"""Requirements bulk-ingest pipeline.

Spreadsheet / CSV / clipboard rows are mapped onto requirement fields,
normalized and validated, then committed to a RequirementStore in batches.
The grid session keeps the committed rows editable with debounced saves and
bounded undo/redo.
"""

__version__ = "0.1.0"
