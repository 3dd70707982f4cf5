"""
Tasks that need more than one fetch to produce a single image-ish
resource.
"""

import typing as t
from xml.etree.ElementTree import ElementTree

from loguru import logger
from pyglet.math import Vec2
from schema import And, Optional, Or, Schema, SchemaError, Use

from assetflow.core.asset_cache import destroy_value
from assetflow.core.task import AssetDescriptor, Task, TaskCallback

if t.TYPE_CHECKING:
	from pyglet.image import AbstractImage, ImageData
	from assetflow.core.asset_manager import AssetManager


def _get_rgba(image: t.Any) -> bytes:
	"""
	Returns an image's pixels as tightly packed RGBA rows, top row
	first.
	"""
	if hasattr(image, "get_image_data"):
		image = image.get_image_data()
	# Negative pitch flips pyglet's bottom-up row order
	return image.get_data("RGBA", -image.width * 4)


def merge_alpha_channels(
	color: bytes,
	color_size: t.Tuple[int, int],
	alpha: bytes,
	alpha_size: t.Tuple[int, int],
) -> t.Tuple[int, int, bytes]:
	"""
	Merges the RGB channels of one RGBA buffer with the alpha channel of
	another. Both buffers must be tightly packed, top row first.
	The images are anchored at their top left corner; the resulting
	canvas is as large as the larger of the two in each dimension and
	everything not covered by both images is fully transparent.
	The color image's own alpha is kept as a factor, so a pixel ends up
	with an alpha of ``color_alpha * mask_alpha / 255``.

	Returns a three-element tuple of width, height and the merged RGBA
	data.
	"""
	cw, ch = color_size
	aw, ah = alpha_size
	if len(color) < cw * ch * 4 or len(alpha) < aw * ah * 4:
		raise ValueError("Pixel data is smaller than the given image dimensions")

	width = max(cw, aw)
	height = max(ch, ah)
	out = bytearray(width * height * 4)
	overlap_w = min(cw, aw)

	for y in range(min(ch, ah)):
		for x in range(overlap_w):
			ci = (y * cw + x) * 4
			ai = (y * aw + x) * 4
			oi = (y * width + x) * 4
			out[oi:oi + 3] = color[ci:ci + 3]
			out[oi + 3] = color[ci + 3] * alpha[ai + 3] // 255

	return width, height, bytes(out)


class ColorAlphaTask(Task):
	"""
	Loads an image that has been split into a color only image (think
	JPEG) and a separate image carrying its alpha channel, then merges
	the two into one RGBA image.

	Recognized descriptor keys beyond the common ones:
	- ``color``: Source of the color image. Required.
	- ``alpha``: Source of the alpha image. Required.
	"""

	def __init__(self, manager: "AssetManager", asset: AssetDescriptor) -> None:
		super().__init__(manager, asset, asset["color"])

		self.color: t.Any = asset["color"]
		self.alpha: t.Any = asset["alpha"]

	@classmethod
	def test(cls, asset: AssetDescriptor) -> bool:
		return bool(asset.get("color")) and bool(asset.get("alpha"))

	def start(self, callback: TaskCallback) -> None:
		def on_loaded(results: t.Dict[str, t.Any]) -> None:
			color = results["_color"]
			alpha = results["_alpha"]
			if color is None or alpha is None:
				logger.error(f"Color/alpha pair {self.color!r}/{self.alpha!r} failed loading")
				destroy_value(results)
				callback(None)
				return

			try:
				merged = self.merge_alpha(color, alpha)
			except (ValueError, AttributeError) as e:
				logger.error(f"Could not merge {self.color!r} with {self.alpha!r}: {e}")
				merged = None
			destroy_value(results)
			callback(merged)

		self.load({"_color": self.color, "_alpha": self.alpha}, on_loaded, parallel=True, cache_all=False)

	@classmethod
	def merge_alpha(cls, color_image: t.Any, alpha_image: t.Any) -> t.Any:
		"""
		Merges the RGB channels of ``color_image`` with the alpha
		channel of ``alpha_image``. Both must be pyglet images or at
		least look like ``ImageData``.
		"""
		width, height, data = merge_alpha_channels(
			_get_rgba(color_image),
			(color_image.width, color_image.height),
			_get_rgba(alpha_image),
			(alpha_image.width, alpha_image.height),
		)
		return cls.create_image(width, height, data)

	@staticmethod
	def create_image(width: int, height: int, data: bytes) -> "ImageData":
		"""
		Wraps merged pixel data, top row first, in an image.
		"""
		from pyglet.image import ImageData

		return ImageData(width, height, "RGBA", data, -width * 4)

	def destroy(self) -> None:
		super().destroy()
		self.color = None
		self.alpha = None


class AtlasFrame:
	__slots__ = ("name", "x", "y", "width", "height", "source_size", "offset")

	def __init__(
		self,
		name: str,
		x: int,
		y: int,
		width: int,
		height: int,
		source_size: Vec2,
		offset: Vec2,
	) -> None:
		self.name = name
		self.x = x
		"""Left edge of the frame in the atlas image, in pixels."""
		self.y = y
		"""Top edge of the frame in the atlas image, counted from the top."""
		self.width = width
		self.height = height
		self.source_size = source_size
		"""Size of the frame before it was trimmed when packing the atlas."""
		self.offset = offset
		"""Offset to draw the trimmed frame at to restore its original placement."""

	def __repr__(self) -> str:
		return f"<{self.__class__.__name__} {self.name!r} ({self.x}, {self.y}, {self.width}, {self.height})>"


class TextureAtlas:
	"""
	An image with named rectangular frames on it.
	Owns the image: Destroying the atlas destroys the image as well.
	"""

	def __init__(self, image: t.Any, frames: t.Iterable[AtlasFrame], scale: float = 1.0) -> None:
		self.image = image
		self.scale = scale
		self.frames: t.Dict[str, AtlasFrame] = {f.name: f for f in frames}
		self._region_cache: t.Dict[t.Tuple[int, int, int, int], "AbstractImage"] = {}

	def get_frame(self, name: str) -> AtlasFrame:
		return self.frames[name]

	def get_region(self, name: str) -> "AbstractImage":
		"""
		Returns the region of the atlas image the frame ``name`` sits
		on. Identical rectangles share one region.
		"""
		f = self.frames[name]
		rect = (f.x, f.y, f.width, f.height)
		if rect not in self._region_cache:
			# Frame coordinates are top-down, pyglet's are bottom-up
			self._region_cache[rect] = self.image.get_region(
				f.x, self.image.height - f.height - f.y, f.width, f.height
			)
		return self._region_cache[rect]

	def __contains__(self, name: object) -> bool:
		return name in self.frames

	def __len__(self) -> int:
		return len(self.frames)

	def __iter__(self) -> t.Iterator[str]:
		return iter(self.frames)

	def destroy(self) -> None:
		if self.image is not None:
			destroy_value(self.image)
		self.image = None
		self.frames = {}
		self._region_cache = {}


_RECT = {"x": int, "y": int, "w": int, "h": int}
_FRAME = {
	"frame": _RECT,
	Optional("rotated"): bool,
	Optional("trimmed"): bool,
	Optional("spriteSourceSize"): _RECT,
	Optional("sourceSize"): {"w": int, "h": int},
	Optional(str): object,
}

ATLAS_SCHEMA = Schema(
	{
		"frames": Or({str: _FRAME}, [{"filename": str, **_FRAME}]),
		Optional("meta"): {
			Optional("scale"): And(Or(int, float, str), Use(float)),
			Optional(str): object,
		},
	},
	ignore_extra_keys = True,
)


def parse_json_atlas(data: t.Dict) -> t.Tuple[t.List[AtlasFrame], float]:
	"""
	Parses a TexturePacker-style JSON atlas (hash or array flavor)
	into frames and the atlas scale.

	:raises SchemaError: If the data does not look like an atlas.
	"""
	data = ATLAS_SCHEMA.validate(data)

	raw_frames = data["frames"]
	if isinstance(raw_frames, dict):
		items = list(raw_frames.items())
	else:
		items = [(f["filename"], f) for f in raw_frames]

	frames = []
	for name, entry in items:
		if entry.get("rotated"):
			logger.warning(f"Rotated frame {name!r} is not supported. Skipping.")
			continue

		rect = entry["frame"]
		w, h = rect["w"], rect["h"]
		if entry.get("trimmed") and "spriteSourceSize" in entry and "sourceSize" in entry:
			sss = entry["spriteSourceSize"]
			source_size = Vec2(entry["sourceSize"]["w"], entry["sourceSize"]["h"])
			offset = Vec2(sss["x"], sss["y"])
		else:
			source_size = Vec2(w, h)
			offset = Vec2(0, 0)

		frames.append(AtlasFrame(name, rect["x"], rect["y"], w, h, source_size, offset))

	return frames, data.get("meta", {}).get("scale", 1.0)


def parse_sparrow_atlas(xml: ElementTree) -> t.List[AtlasFrame]:
	"""
	Parses a Sparrow-style XML atlas of ``SubTexture`` entries into
	frames. Malformed entries are skipped.
	"""
	frames = []
	for sub_texture in xml.getroot():
		if sub_texture.tag != "SubTexture":
			logger.warning(f"Expected 'SubTexture' tag, got {sub_texture.tag!r}. Skipping.")
			continue

		if sub_texture.attrib.get("rotated") == "true":
			logger.warning(f"Rotated frame {sub_texture.attrib.get('name')!r} is not supported. Skipping.")
			continue

		name, x, y, w, h, fx, fy, fw, fh = (
			sub_texture.attrib.get(k) for k in (
				"name", "x", "y", "width", "height", "frameX", "frameY", "frameWidth",
				"frameHeight"
			)
		)
		region = (x, y, w, h)
		frame_vars = (fx, fy, fw, fh)

		# None of the first five fields may be missing and either all or none of the
		# frame_vars must be.
		if (
			name is None or any(i is None for i in region) or (
				any(i is None for i in frame_vars) and
				any(i is not None for i in frame_vars)
			)
		):
			logger.warning(
				f"{(name, region, frame_vars)} Invalid attributes for SubTexture entry. Skipping."
			)
			continue

		try:
			x, y, w, h = (int(e) for e in region)
			fx, fy, fw, fh = (None if e is None else int(e) for e in frame_vars)
		except ValueError:
			logger.warning(f"Non-integer attributes on SubTexture {name!r}. Skipping.")
			continue

		trimmed = fx is not None
		frames.append(AtlasFrame(
			name,
			x,
			y,
			w,
			h,
			Vec2(fw, fh) if trimmed else Vec2(w, h),
			Vec2(-fx, -fy) if trimmed else Vec2(0, 0),
		))

	return frames


class TextureAtlasTask(Task):
	"""
	Loads an atlas description together with the image it describes
	and combines them into a ``TextureAtlas``.

	Recognized descriptor keys beyond the common ones:
	- ``atlas``: Source of the atlas description; JSON or Sparrow XML.
	  Required.
	- ``image``: Source of the atlas image.
	- ``color``, ``alpha``: Sources of a split color/alpha atlas image,
	  used when ``image`` is absent.
	"""

	def __init__(self, manager: "AssetManager", asset: AssetDescriptor) -> None:
		super().__init__(manager, asset, asset["atlas"])

		self.atlas: t.Any = asset["atlas"]
		self.image: t.Any = asset.get("image")
		self.color: t.Any = asset.get("color")
		self.alpha: t.Any = asset.get("alpha")

	@classmethod
	def test(cls, asset: AssetDescriptor) -> bool:
		return bool(asset.get("atlas")) and (
			bool(asset.get("image")) or ColorAlphaTask.test(asset)
		)

	def start(self, callback: TaskCallback) -> None:
		if self.image:
			image_source = self.image
		else:
			image_source = {"color": self.color, "alpha": self.alpha}

		atlas_source = self.atlas

		def on_loaded(results: t.Dict[str, t.Any]) -> None:
			atlas = self.create_atlas(atlas_source, results["_atlas"], results["_image"])
			if atlas is None:
				destroy_value(results["_image"])
			callback(atlas)

		self.load({"_atlas": atlas_source, "_image": image_source}, on_loaded, parallel=True, cache_all=False)

	@staticmethod
	def create_atlas(source: t.Any, data: t.Any, image: t.Any) -> t.Optional[TextureAtlas]:
		"""
		Builds a ``TextureAtlas`` from loaded atlas data and its image.
		Returns ``None`` and logs if either is unusable.
		"""
		if image is None or data is None:
			logger.error(f"Atlas {source!r} or its image failed loading")
			return None

		if isinstance(data, ElementTree):
			return TextureAtlas(image, parse_sparrow_atlas(data))

		try:
			frames, scale = parse_json_atlas(data)
		except SchemaError as e:
			logger.error(f"Invalid atlas data in {source!r}: {e}")
			return None

		return TextureAtlas(image, frames, scale)

	def destroy(self) -> None:
		super().destroy()
		self.atlas = self.image = self.color = self.alpha = None
