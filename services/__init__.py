"""
Kling Panel Services

- video_generation: submit, poll and download Kling jobs
"""
