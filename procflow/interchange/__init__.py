from .bpmn import ImportResult, export_bpmn, import_bpmn

__all__ = ["ImportResult", "export_bpmn", "import_bpmn"]
