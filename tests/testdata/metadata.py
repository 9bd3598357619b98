from os.path import join, split

path_to_testdata = split(__file__)[0]

path_to_config = join(path_to_testdata, "config/config.yml")
path_to_alternative_config = join(path_to_testdata, "config/config2.yml")
path_to_invalid_config = join(path_to_testdata, "config/config-invalid.yml")
path_to_frames = join(path_to_testdata, "input/frames.jsonl")
