"""
assetflow core submodule.
Everything that makes up the loading pipeline lives here:
 - The task abstraction and its builtin variants
 - The task registry resolving asset descriptors to tasks
 - The load sessions (`AssetLoad`) running tasks and assembling results
 - The asset cache and the manager tying all of it together
 - The fetcher that actually gets bytes off the disk
"""
