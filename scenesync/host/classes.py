"""
Class hierarchy table for host entities.

The host environment answers "is-a" questions for live entities, but the
filter needs the same answer from a bare class name (for example when a
change arrives for an entity that has already been destroyed). This table
maps each known class to its direct superclass; anything not listed is a
direct subclass of Instance.
"""

from __future__ import annotations

from functools import lru_cache

ROOT_CLASS = "Instance"

SUPERCLASSES: dict[str, str] = {
    # Root and services
    "ServiceProvider": "Instance",
    "DataModel": "ServiceProvider",
    "WorldRoot": "Model",
    "Workspace": "WorldRoot",
    "WorldModel": "WorldRoot",
    # Geometry
    "PVInstance": "Instance",
    "Model": "PVInstance",
    "Actor": "Model",
    "BasePart": "PVInstance",
    "FormFactorPart": "BasePart",
    "Part": "FormFactorPart",
    "WedgePart": "FormFactorPart",
    "CornerWedgePart": "BasePart",
    "TrussPart": "BasePart",
    "TriangleMeshPart": "BasePart",
    "MeshPart": "TriangleMeshPart",
    "PartOperation": "TriangleMeshPart",
    "UnionOperation": "PartOperation",
    "NegateOperation": "PartOperation",
    "IntersectOperation": "PartOperation",
    "Seat": "Part",
    "SpawnLocation": "Part",
    "Platform": "Part",
    "SkateboardPlatform": "Part",
    "FlagStand": "Part",
    "VehicleSeat": "BasePart",
    "Terrain": "BasePart",
    "DataModelMesh": "Instance",
    "FileMesh": "DataModelMesh",
    "SpecialMesh": "FileMesh",
    "BevelMesh": "DataModelMesh",
    "BlockMesh": "BevelMesh",
    "CylinderMesh": "BevelMesh",
    "FaceInstance": "Instance",
    "Decal": "FaceInstance",
    "Texture": "Decal",
    # Scripts
    "LuaSourceContainer": "Instance",
    "BaseScript": "LuaSourceContainer",
    "Script": "BaseScript",
    "LocalScript": "Script",
    "CoreScript": "BaseScript",
    "ModuleScript": "LuaSourceContainer",
    # Values
    "ValueBase": "Instance",
    "IntValue": "ValueBase",
    "NumberValue": "ValueBase",
    "BoolValue": "ValueBase",
    "StringValue": "ValueBase",
    "ObjectValue": "ValueBase",
    "Vector3Value": "ValueBase",
    "CFrameValue": "ValueBase",
    "Color3Value": "ValueBase",
    "RayValue": "ValueBase",
    "BrickColorValue": "ValueBase",
    "DoubleConstrainedValue": "ValueBase",
    # UI
    "GuiBase": "Instance",
    "GuiBase2d": "GuiBase",
    "GuiObject": "GuiBase2d",
    "LayerCollector": "GuiBase2d",
    "ScreenGui": "LayerCollector",
    "BillboardGui": "LayerCollector",
    "SurfaceGuiBase": "LayerCollector",
    "SurfaceGui": "SurfaceGuiBase",
    "Frame": "GuiObject",
    "ScrollingFrame": "GuiObject",
    "CanvasGroup": "GuiObject",
    "TextLabel": "GuiObject",
    "TextBox": "GuiObject",
    "GuiButton": "GuiObject",
    "TextButton": "GuiButton",
    "ImageButton": "GuiButton",
    "ImageLabel": "GuiObject",
    "VideoFrame": "GuiObject",
    "ViewportFrame": "GuiObject",
    "UIBase": "Instance",
    "UIComponent": "UIBase",
    "UIGridStyleLayout": "UIComponent",
    "UIListLayout": "UIGridStyleLayout",
    "UIGridLayout": "UIGridStyleLayout",
    "UITableLayout": "UIGridStyleLayout",
    "UIPageLayout": "UIGridStyleLayout",
    "UIPadding": "UIComponent",
    "UIScale": "UIComponent",
    "UIConstraint": "UIComponent",
    "UISizeConstraint": "UIConstraint",
    "UITextSizeConstraint": "UIConstraint",
    "UIAspectRatioConstraint": "UIConstraint",
    "UICorner": "UIComponent",
    "UIGradient": "UIComponent",
    "UIStroke": "UIComponent",
    "UIFlexItem": "UIComponent",
    # Lighting
    "Light": "Instance",
    "PointLight": "Light",
    "SpotLight": "Light",
    "SurfaceLight": "Light",
    "PostEffect": "Instance",
    "BloomEffect": "PostEffect",
    "BlurEffect": "PostEffect",
    "ColorCorrectionEffect": "PostEffect",
    "DepthOfFieldEffect": "PostEffect",
    "SunRaysEffect": "PostEffect",
    "Skybox": "Sky",
    # Physics
    "Attachment": "Instance",
    "Bone": "Attachment",
    "Constraint": "Instance",
    "AlignOrientation": "Constraint",
    "AlignPosition": "Constraint",
    "AngularVelocity": "Constraint",
    "BallSocketConstraint": "Constraint",
    "SlidingBallConstraint": "Constraint",
    "CylindricalConstraint": "SlidingBallConstraint",
    "PrismaticConstraint": "SlidingBallConstraint",
    "HingeConstraint": "Constraint",
    "LineForce": "Constraint",
    "LinearVelocity": "Constraint",
    "PlaneConstraint": "Constraint",
    "RigidConstraint": "Constraint",
    "RodConstraint": "Constraint",
    "RopeConstraint": "Constraint",
    "SpringConstraint": "Constraint",
    "Torque": "Constraint",
    "TorsionSpringConstraint": "Constraint",
    "UniversalConstraint": "Constraint",
    "VectorForce": "Constraint",
    "WeldConstraint": "Instance",
    "NoCollisionConstraint": "Instance",
    "JointInstance": "Instance",
    "Weld": "JointInstance",
    "Snap": "JointInstance",
    "Glue": "JointInstance",
    "Motor": "JointInstance",
    "Motor6D": "Motor",
    "ManualSurfaceJointInstance": "JointInstance",
    "ManualWeld": "ManualSurfaceJointInstance",
    "ManualGlue": "ManualSurfaceJointInstance",
    "BodyMover": "Instance",
    "BodyPosition": "BodyMover",
    "BodyVelocity": "BodyMover",
    "BodyGyro": "BodyMover",
    "BodyThrust": "BodyMover",
    "BodyAngularVelocity": "BodyMover",
    "RocketPropulsion": "BodyMover",
}


@lru_cache(maxsize=None)
def ancestors(class_name: str) -> tuple[str, ...]:
    """Return the class itself followed by its superclasses up to Instance."""
    chain = [class_name]
    seen = {class_name}
    current = class_name
    while current != ROOT_CLASS:
        parent = SUPERCLASSES.get(current, ROOT_CLASS)
        if parent in seen:
            break
        chain.append(parent)
        seen.add(parent)
        current = parent
    return tuple(chain)


def is_a(class_name: str, base: str) -> bool:
    """Whether class_name is base or one of its subclasses."""
    return base in ancestors(class_name)
