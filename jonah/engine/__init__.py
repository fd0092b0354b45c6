"""Story-state engine.

- history.History: display / rewind_to / save / restore over a SnapshotStack
- bookmark: fragment codec and Location
- renderer: IRenderer / DummyRenderer (pygame version in renderer_pygame,
  imported on demand)
"""
