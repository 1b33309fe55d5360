"""
Lake and wetland model.

Stage-area relationship in landcell.lake.stage, energy and water balance
solvers in landcell.lake.solvers, coupling with the grid cell in
landcell.lake.coupler. Import from the submodules directly.
"""
