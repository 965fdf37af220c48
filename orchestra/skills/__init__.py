"""
Skill registry for Orchestra.

Skills are instruction sets offered to models through the ``use_skill``
tool.
"""
