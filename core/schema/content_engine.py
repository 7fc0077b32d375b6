"""Content engine schema - the tables every new tenant gets.

Tables are ordered so link fields only point backwards; the reverse side of
each relation (e.g. "Social Media Content" inside Images) is created by the
linking phase rather than declared here.
"""

from core.schema.definition import (
    FieldSpec,
    FieldType,
    SchemaDefinition,
    TableSpec,
    select_options,
)

SCHEMA_VERSION = "2025.1"

_PLATFORMS = ("Facebook", "Instagram", "Twitter", "LinkedIn", "TikTok")

_IMAGE_TYPES = (
    "New image",
    "New image with captions",
    "Image from reference image",
    "Image from reference with captions",
    "Image from URL",
    "Image from URL with captions",
)

_IMAGE_STYLES = (
    "Photorealistic", "Digital Art", "Vintage", "Surreal", "Minimalist",
    "Cyberpunk", "Pencil Sketch", "Anime/Manga", "3D Render", "Comic Book",
)

_IMAGE_MODELS = (
    "openai/gpt-image-1",
    "black-forest-labs/flux-schnell",
    "black-forest-labs/flux-dev",
    "black-forest-labs/flux-1.1-pro-ultra",
    "stability-ai/stable-diffusion-3.5-large",
    "recraft-ai/recraft-v3",
    "ideogram-ai/ideogram-v2",
)

_IMAGE_SIZES = (
    "1024x1024 (1:1)",
    "1080 x 1920 (9:16)",
    "1200 x 630 (1.91:1)",
    "1920 x 1080 (16:9)",
    "896 x 1120 (4:5)",
)

_IMAGE_STATUSES = ("Draft", "Generating", "Generated", "Completed", "Failed", "Uploaded")


def _text(name: str, **kwargs) -> FieldSpec:
    return FieldSpec(name=name, type=FieldType.TEXT, **kwargs)


def _long_text(name: str, **kwargs) -> FieldSpec:
    return FieldSpec(name=name, type=FieldType.LONG_TEXT, **kwargs)


def _single_select(name: str, *values: str, **kwargs) -> FieldSpec:
    return FieldSpec(name=name, type=FieldType.SINGLE_SELECT, type_options=select_options(*values), **kwargs)


def _multiple_select(name: str, *values: str, **kwargs) -> FieldSpec:
    return FieldSpec(name=name, type=FieldType.MULTIPLE_SELECT, type_options=select_options(*values), **kwargs)


def _file(name: str, **kwargs) -> FieldSpec:
    return FieldSpec(name=name, type=FieldType.FILE, **kwargs)


def _url(name: str, **kwargs) -> FieldSpec:
    return FieldSpec(name=name, type=FieldType.URL, **kwargs)


def _link(name: str, target: str, related: str, **kwargs) -> FieldSpec:
    return FieldSpec(
        name=name,
        type=FieldType.LINK_ROW,
        link_target=target,
        related_field_name=related,
        **kwargs,
    )


def _created_on(name: str = "Created At") -> FieldSpec:
    return FieldSpec(name=name, type=FieldType.CREATED_ON)


def _last_modified(name: str = "Updated At") -> FieldSpec:
    return FieldSpec(name=name, type=FieldType.LAST_MODIFIED)


def _autonumber(name: str, **kwargs) -> FieldSpec:
    return FieldSpec(name=name, type=FieldType.AUTONUMBER, **kwargs)


CONTENT_IDEAS = TableSpec(
    key="content_ideas",
    name="Content Ideas",
    primary=_autonumber("record_id", key="record_id"),
    fields=(
        _text("Title"),
        _long_text("Description"),
        _single_select("Idea Type", "Social Media Post", "Email Campaign", "Blog Post", "Video Content"),
        _single_select("Source Type", "AI Generated", "Manual Entry", "Imported"),
        _multiple_select("Platforms", *_PLATFORMS),
        _single_select("Status", "Draft", "Approved", "Rejected", "In Review"),
        _created_on(),
        _last_modified(),
    ),
)

TEMPLATES = TableSpec(
    key="templates",
    name="Templates",
    primary=_autonumber("Template ID"),
    fields=(
        _text("Template Name"),
        _single_select("Template Type", "Email", "Social Media", "Web Page", "Document"),
        _text("Template Category"),
        _long_text("HTML Template", key="html_template"),
        _long_text("CSS Styles", key="css_styles"),
        FieldSpec(name="Is Active", type=FieldType.BOOLEAN),
        _last_modified("Last Modified"),
        _created_on("Created Date"),
    ),
)

IMAGES = TableSpec(
    key="images",
    name="Images",
    primary=_autonumber("Image ID"),
    fields=(
        _file("Image"),
        _long_text("Image Prompt"),
        _single_select("Image Type", *_IMAGE_TYPES),
        _long_text("Image Scene"),
        _single_select("Image Style", *_IMAGE_STYLES),
        _single_select("Image Model", *_IMAGE_MODELS),
        _single_select("Image Size", *_IMAGE_SIZES),
        _single_select("Image Status", *_IMAGE_STATUSES),
        _file("Reference Image"),
        _url("Reference URL", key="reference_url"),
        _text("Caption Text"),
        _single_select(
            "Caption Position",
            "bottom-center", "bottom-left", "bottom-right",
            "top-center", "top-left", "top-right", "center",
        ),
        _file("Voice Note"),
        _text("Client ID"),
        _created_on(),
        FieldSpec(name="Accepted At", type=FieldType.DATE),
        _url("Image Link URL", key="image_link_url"),
    ),
)

EMAIL_IDEAS = TableSpec(
    key="email_ideas",
    name="Email Ideas",
    primary=_autonumber("Email ID"),
    fields=(
        _text("Email Idea Name"),
        _single_select("Email Type", "Newsletter", "Promotional", "Transactional", "Welcome Series"),
        _long_text("Hook"),
        _text("CTA"),
        _long_text("Email Text Idea"),
        _file("Email Voice Idea"),
        _url("Email URL Idea", key="email_url_idea"),
        _file("Email Image Idea"),
        _single_select("Status", "Draft", "Approved", "Sent", "Scheduled"),
        _last_modified("Last Modified"),
        _created_on("Created Date"),
        _link("Templates", "templates", related="Email Ideas"),
        _long_text("Generated HTML", key="generated_html"),
        _link("Images", "images", related="Email Ideas"),
    ),
)

SOCIAL_MEDIA_CONTENT = TableSpec(
    key="social_media_content",
    name="Social Media Content",
    primary=_autonumber("Post ID"),
    fields=(
        _long_text("Hook"),
        _long_text("Post"),
        _text("CTA"),
        _text("Hashtags"),
        _single_select("Platform", *_PLATFORMS),
        _single_select("Content Type", "Post", "Story", "Reel", "Video"),
        FieldSpec(name="Character Count", type=FieldType.NUMBER),
        _long_text("Image Prompt"),
        _link("Images", "images", related="Social Media Content"),
        _text("Angle"),
        _text("Intent"),
        _text("Content Theme"),
        _text("Psychological Trigger"),
        _text("Engagement Objective"),
        _long_text("Comments"),
        _single_select("Status", "Draft", "Approved", "Published", "Scheduled", "Rejected"),
        _text("Approved By"),
        _link("Content Idea", "content_ideas", related="Social Media Content"),
        FieldSpec(name="Scheduled Time", type=FieldType.DATE, type_options={"date_include_time": True}),
        _created_on(),
        _last_modified(),
    ),
)

BRAND_ASSETS = TableSpec(
    key="brand_assets",
    name="Brand Assets",
    primary=_text("Asset Name"),
    fields=(
        _multiple_select("Platform", *_PLATFORMS, "Website"),
        _single_select("Content Type", "Logo", "Banner", "Icon", "Image"),
        _single_select("Asset Type", "Primary", "Secondary", "Tertiary"),
        _long_text("Asset Information"),
        _long_text("Brand Voice Guidelines"),
        _text("Approved Hashtags"),
        _long_text("Tone Style Preferences"),
        _long_text("Forbidden Words Topics"),
        _long_text("Platform Specific Rules"),
        _file("File"),
        _url("File URL", key="file_url"),
        _single_select("Status", "Draft", "Approved", "Active", "Archived"),
        _single_select("Priority", "Low", "Medium", "High"),
        _created_on("Created Date"),
        _last_modified("Last Updated"),
        _long_text("Notes"),
    ),
)

IMAGE_IDEAS = TableSpec(
    key="image_ideas",
    name="Image Ideas",
    primary=_autonumber("Image Idea ID"),
    fields=(
        _text("Image Idea Name"),
        _long_text("Image Prompt"),
        _long_text("Image Scene"),
        _single_select("Image Type", *_IMAGE_TYPES),
        _single_select("Image Style", *_IMAGE_STYLES),
        _single_select("Image Model", *_IMAGE_MODELS),
        _single_select("Image Size", *_IMAGE_SIZES),
        _file("Reference Image"),
        _url("Reference URL", key="reference_url"),
        _file("Voice Note"),
        _single_select("Operation Type", "generate", "combine", "edit", "browse"),
        _link("Selected Images", "images", related="Image Ideas"),
        _file("Uploaded Images"),
        _file("Generated Image"),
        _single_select("Image Status", *_IMAGE_STATUSES),
        _created_on(),
        _last_modified(),
        _long_text("Notes"),
    ),
)


CONTENT_ENGINE_SCHEMA = SchemaDefinition(
    version=SCHEMA_VERSION,
    tables=(
        CONTENT_IDEAS,
        TEMPLATES,
        IMAGES,
        EMAIL_IDEAS,
        SOCIAL_MEDIA_CONTENT,
        BRAND_ASSETS,
        IMAGE_IDEAS,
    ),
)
