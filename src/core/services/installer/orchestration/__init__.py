"""
L5 Orchestration — sequencer, service and runtime.
"""
