from typing import Iterable, Optional

from bogofit.schemas.virtual_fitting import SampleImageSchema, SlotName

CATEGORY_TOP = "상의"
CATEGORY_BOTTOM = "하의"
CATEGORY_OUTER = "아우터"
CATEGORY_DRESS = "원피스"
CATEGORY_OTHER = "기타"

# Product category -> slot the product image is fitted into
CATEGORY_SLOTS = {
    CATEGORY_TOP: SlotName.GARMENT,
    CATEGORY_OUTER: SlotName.GARMENT,
    CATEGORY_DRESS: SlotName.GARMENT,
    CATEGORY_BOTTOM: SlotName.LOWER,
    "top": SlotName.GARMENT,
    "outer": SlotName.GARMENT,
    "dress": SlotName.GARMENT,
    "bottom": SlotName.LOWER,
}

# Checked in order; the first category whose keyword appears wins
CATEGORY_KEYWORDS = [
    (CATEGORY_TOP, ["상의", "top", "티셔츠", "셔츠", "블라우스", "니트", "맨투맨", "후드"]),
    (CATEGORY_BOTTOM, ["하의", "bottom", "바지", "팬츠", "스커트", "청바지", "데님"]),
    (CATEGORY_OUTER, ["아우터", "outer", "자켓", "코트", "점퍼", "패딩", "가디건"]),
    (CATEGORY_DRESS, ["원피스", "dress", "드레스"]),
]


def slot_for_category(category: Optional[str]) -> Optional[SlotName]:
    """Slot a product of this category seeds, or None if it seeds nothing."""
    if not category:
        return None
    return CATEGORY_SLOTS.get(category.strip().lower()) or CATEGORY_SLOTS.get(category.strip())


def classify_product_category(category_names: Iterable[str]) -> str:
    """Map storefront category names to one of the fitting categories."""
    names = [name.lower() for name in category_names if name]
    if not names:
        return CATEGORY_OTHER

    for category, keywords in CATEGORY_KEYWORDS:
        if any(keyword in name for keyword in keywords for name in names):
            return category
    return CATEGORY_OTHER


HUMAN_SAMPLES = [
    SampleImageSchema(id=f"human-{n}", src=f"/images/human/image{n}.jpg", alt=f"Model image {n - 1}")
    for n in range(2, 9)
]

GARMENT_SAMPLES = [
    SampleImageSchema(id="garment-1", src="/images/top/shirt01.jpg", alt="Top sample 1", category=CATEGORY_TOP),
    SampleImageSchema(id="garment-2", src="/images/top/shirt02.jpg", alt="Outer sample 1", category=CATEGORY_OUTER),
    SampleImageSchema(id="garment-3", src="/images/top/shirt03.jpg", alt="Dress sample 1", category=CATEGORY_DRESS),
    SampleImageSchema(id="garment-4", src="/images/top/shirt04.jpg", alt="Dress sample 2", category=CATEGORY_DRESS),
    SampleImageSchema(id="garment-5", src="/images/top/shirt05.jpg", alt="Dress sample 3", category=CATEGORY_DRESS),
]

LOWER_SAMPLES = [
    SampleImageSchema(
        id=f"lower-{n}",
        src=f"/images/bottom/bottom{n:03d}.png",
        alt=f"Bottom sample {n}",
        category=CATEGORY_BOTTOM,
    )
    for n in range(1, 6)
]

BACKGROUND_SAMPLES = [
    SampleImageSchema(id=f"bg-{n}", src=f"/images/bg/background_{n:03d}.png", alt=f"Background image {n}")
    for n in range(1, 6)
]

SAMPLES_BY_SLOT = {
    SlotName.HUMAN: HUMAN_SAMPLES,
    SlotName.GARMENT: GARMENT_SAMPLES,
    SlotName.LOWER: LOWER_SAMPLES,
    SlotName.BACKGROUND: BACKGROUND_SAMPLES,
}


def find_sample(sample_id: str) -> Optional[tuple[SlotName, SampleImageSchema]]:
    for slot, samples in SAMPLES_BY_SLOT.items():
        for sample in samples:
            if sample.id == sample_id:
                return slot, sample
    return None
