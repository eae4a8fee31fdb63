"""
Sandbox Runner Application Layer

Services orchestrating configuration resolution, execution, experiences
and the project tool.
"""
