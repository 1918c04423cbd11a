"""
Chaos scenarios for the teardown harness.

Run the whole scenario against fake runtimes, fake shims and fake tracers:
- Teardown finishing in time (tracer exits on its own)
- Teardown stuck past its deadline
- Tracer never exiting after removal (shim force-terminated)
- Tracer misbehaving (non-zero exit, no attachment)
"""
