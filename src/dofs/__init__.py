"""DoF numbering, renumbering strategies and per-level DoF sets."""

from dofs.numbering import DoFNumbering, distribute_dofs, verify_numbering
from dofs.renumbering import (
    ComponentWiseRenumbering,
    CuthillMcKeeRenumbering,
    IdentityRenumbering,
    RandomRenumbering,
    Renumbering,
    create_renumbering,
)
from dofs.tools import (
    extract_inner_interface_dofs,
    face_at_boundary,
    log_interface_dofs,
    make_boundary_list,
)

__all__ = [
    "ComponentWiseRenumbering",
    "CuthillMcKeeRenumbering",
    "DoFNumbering",
    "IdentityRenumbering",
    "RandomRenumbering",
    "Renumbering",
    "create_renumbering",
    "distribute_dofs",
    "extract_inner_interface_dofs",
    "face_at_boundary",
    "log_interface_dofs",
    "make_boundary_list",
    "verify_numbering",
]
