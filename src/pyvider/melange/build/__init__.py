"""
The `build` sub-package reconciles a package configuration against the
artifacts on disk.

This includes:
- Planning which architectures need a build and resolving their options.
- Dispatching the external melange build engine, one task per architecture.
- Deriving the identity that callers use for change detection.
"""
