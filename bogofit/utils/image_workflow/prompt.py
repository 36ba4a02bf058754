from typing import Optional

TRYON_PROMPT = """You are an expert AI for virtual clothing try-on. Your ONLY task is to digitally dress the person from IMAGE 1 with the clothing from IMAGE 2.

SOURCE - IMAGE 1 (THE PERSON):
This is the BASE image. You must preserve EVERYTHING from this image:
• Person's face - IDENTICAL (same facial features, skin tone, expression, hair, makeup)
• Person's body - IDENTICAL (same proportions, pose, stance, arms position, legs position)
• Background - IDENTICAL (same environment, lighting, colors, shadows)
• Image framing - IDENTICAL (same camera angle, distance, composition)
• Image dimensions - Maintain 720×1080 pixels (9:16 vertical portrait)

GARMENT - IMAGE 2 (THE CLOTHING):
Extract ONLY the {title}:
• Copy: Design, pattern, color, fabric texture, style details
• Fit: Naturally onto the person's body from IMAGE 1
• Adapt: Wrinkles, shadows, and draping to match body shape and pose

CRITICAL RULES:
✓ Keep the person's identity, pose and background 100% identical
✓ Show full body from head to feet in 720×1080 vertical format
✗ Do not crop body parts, change camera angle, or modify the face or body shape

RESULT: A perfect virtual try-on where ONLY the clothing has changed."""

PERSON_ONLY_PROMPT = (
    "Create a professional fashion photo based on this person in image 1. "
    "Keep their face, body, pose, and background EXACTLY the same. High quality fashion photography."
)

GARMENT_ONLY_PROMPT = (
    "Create a professional product photo for this {title} from image 1. "
    "Show it in a professional fashion photography style."
)

ITEM_CLAUSE = """
5. Add the item from image {index} - the person should be naturally holding/wearing this accessory item (bag, hat, etc.) while maintaining their exact same appearance (DO NOT change the person's face or body)"""

OUTPUT_CLAUSE = """

OUTPUT: A photorealistic image where the person looks EXACTLY like in image 1 (same face, same hair, same pose, same background), but wearing the clothing from image 2{item}. The result should look like a professional product photo where only the outfit has been changed."""

VIDEO_PROMPT = (
    "A person trying on and showing off {title}. Standing in place and slowly rotating 360 degrees "
    "to show front, left side, back, and right side of the outfit. Fashion fitting room style. "
    "Vertical 9:16 format. Stay in the same spot, only turn body smoothly. Clean background."
)


def build_fitting_prompt(has_person: bool, has_garment: bool, has_item: bool, product_title: Optional[str]) -> str:
    """Assemble the try-on prompt for the images that were provided."""
    title = product_title or "clothing item"
    if has_person and has_garment:
        prompt = TRYON_PROMPT.format(title=title)
        next_index = 3
    elif has_person:
        prompt = PERSON_ONLY_PROMPT
        next_index = 2
    elif has_garment:
        prompt = GARMENT_ONLY_PROMPT.format(title=title)
        next_index = 2
    else:
        prompt = "TASK: Create a fashion image"
        next_index = 1

    if has_item:
        prompt += ITEM_CLAUSE.format(index=next_index)
    prompt += OUTPUT_CLAUSE.format(item=" with the accessory item" if has_item else "")
    return prompt


def build_video_prompt(product_title: Optional[str]) -> str:
    return VIDEO_PROMPT.format(title=product_title or "fashionable clothing")


GARMENT_ANALYSIS_PROMPT = """Analyze this clothing/fashion product image and determine if it's a TOP (상의) or BOTTOM (하의) garment.

Product name: {product_name}

Classification rules:
- TOP (상의): shirts, t-shirts, blouses, sweaters, jackets, coats, hoodies, tops, dresses, one-piece
- BOTTOM (하의): pants, trousers, jeans, shorts, skirts, leggings

Respond with ONLY ONE of these two words:
- 상의 (if it's a top garment)
- 하의 (if it's a bottom garment)

If you're unsure or it's neither (like accessories, shoes, bags), respond with: 상의

Your response (one word only):"""


def build_garment_analysis_prompt(product_name: Optional[str]) -> str:
    return GARMENT_ANALYSIS_PROMPT.format(product_name=product_name or "Unknown")
