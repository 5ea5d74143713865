"""Import orchestration services"""
