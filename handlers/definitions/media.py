# ============================================================================
# MEDIA CATEGORIES
# ============================================================================
# STATUS: Handler support - Delivered media catalogue
# PURPOSE: Titles, descriptions and baseline usage tips per media category
# CREATED: 19 OCT 2026
# ============================================================================
"""
Media category catalogue shared by delivery-related tasks.

Unknown category keys get a generic entry built from the key itself so
callers never have to special-case them.
"""

from dataclasses import dataclass
from typing import Dict


@dataclass(frozen=True)
class CategoryInfo:
    key: str
    title: str
    description: str
    tip: str


MEDIA_CATEGORIES: Dict[str, CategoryInfo] = {
    "mls": CategoryInfo(
        key="mls",
        title="MLS Photos",
        description="High-resolution photos sized for MLS upload",
        tip="Upload these to the MLS first; listings with complete photo sets get more views in the first week.",
    ),
    "social_feed": CategoryInfo(
        key="social_feed",
        title="Social Feed Images",
        description="Square and portrait crops for Instagram and Facebook feeds",
        tip="Post one image per day over the first week instead of all at once to keep the listing in your followers' feeds.",
    ),
    "social_stories": CategoryInfo(
        key="social_stories",
        title="Social Stories",
        description="Vertical 9:16 images for stories and reels",
        tip="Add a link sticker to the listing page and repost the story on open-house day.",
    ),
    "video": CategoryInfo(
        key="video",
        title="Listing Video",
        description="Edited walkthrough video of the property",
        tip="Feature the video at the top of the listing page and share it natively on social platforms rather than as a link.",
    ),
    "drone": CategoryInfo(
        key="drone",
        title="Aerial Photos",
        description="Drone photography of the property and surroundings",
        tip="Use an aerial shot as the cover image when the lot, view or location is a selling point.",
    ),
    "floor_plan": CategoryInfo(
        key="floor_plan",
        title="Floor Plan",
        description="2D floor plan with room dimensions",
        tip="Include the floor plan right after the exterior photos; buyers use it to shortlist homes before visiting.",
    ),
    "virtual_tour": CategoryInfo(
        key="virtual_tour",
        title="Virtual Tour",
        description="Interactive 3D walkthrough",
        tip="Add the tour link to the MLS virtual tour field and to your email campaigns for out-of-town buyers.",
    ),
    "twilight": CategoryInfo(
        key="twilight",
        title="Twilight Photos",
        description="Exterior photos taken at dusk",
        tip="Use a twilight shot for print flyers and paid ads where it has to stand out.",
    ),
}


def get_category_info(key: str) -> CategoryInfo:
    """Catalogue entry for a category key; generic entry if unknown."""
    info = MEDIA_CATEGORIES.get(key)
    if info is not None:
        return info
    title = key.replace("_", " ").replace("-", " ").title()
    return CategoryInfo(
        key=key,
        title=title,
        description=f"{title} media",
        tip=f"Share your {title.lower()} across your listing page and social channels.",
    )


__all__ = ["CategoryInfo", "MEDIA_CATEGORIES", "get_category_info"]
